"""
Tests for the two-stage detection pipeline using fake model sessions.
"""

import numpy as np
import pytest

from detection.letterbox import compute_letterbox
from detection.pipeline import DetectionPipeline, validate_input_shape
from models.config import DetectionParams
from models.errors import ShapeMismatchError

from fakes import TEST_INPUT_SHAPE, FailingSession, make_detector, make_pipeline, make_reducer


class TestWarmup:
    def test_warmup_runs_detector_on_zeros_once(self):
        pipeline = make_pipeline()
        pipeline.warmup()
        pipeline.warmup()

        assert pipeline.is_warm
        assert len(pipeline.detector.calls) == 1
        tensor = pipeline.detector.calls[0]["images"]
        assert tensor.shape == TEST_INPUT_SHAPE
        assert not tensor.any()
        assert pipeline.reducer.calls == []

    def test_detect_warms_up_cold_pipeline(self, sample_frame):
        pipeline = make_pipeline()
        pipeline.detect(sample_frame)
        assert pipeline.is_warm
        assert len(pipeline.detector.calls) == 2

    def test_warmup_failure_propagates(self):
        pipeline = DetectionPipeline(FailingSession({}), make_reducer(), input_shape=TEST_INPUT_SHAPE)
        with pytest.raises(RuntimeError):
            pipeline.warmup()
        assert not pipeline.is_warm


class TestDetect:
    def test_reducer_receives_detector_output_and_config(self, sample_frame):
        pipeline = make_pipeline(params=DetectionParams(topk=3, iou_threshold=0.5, score_threshold=0.25))
        pipeline.warmup()
        pipeline.detect(sample_frame)

        feeds = pipeline.reducer.calls[0]
        assert feeds["detection"].shape == (1, 5, 16)
        assert feeds["config"].dtype == np.float32
        assert feeds["config"].tolist() == pytest.approx([3, 0.5, 0.25])

    def test_default_config_tensor(self, sample_frame):
        pipeline = make_pipeline()
        pipeline.detect(sample_frame)
        assert pipeline.reducer.calls[0]["config"].tolist() == pytest.approx([1, 0.9, 0.1])

    def test_no_rows_means_no_detections(self, sample_frame):
        assert make_pipeline(rows=[]).detect(sample_frame) == []

    def test_one_pixel_high_frame(self):
        pipeline = make_pipeline(rows=[[32, 32, 16, 8, 0.8]])
        detections = pipeline.detect(np.zeros((1, 4000, 3), dtype=np.uint8))

        assert pipeline.detector.calls[-1]["images"].shape == TEST_INPUT_SHAPE
        assert len(detections) == 1
        x1, y1, x2, y2 = detections[0].bbox.as_tuple()
        assert 0.0 <= y1 <= y2 <= 1.0
        assert (x1 + x2) / 2 == pytest.approx(2000.0)

    def test_box_is_mapped_back_to_frame_pixels(self, sample_frame):
        # 128x64 frame into 64x64: scale 0.5, pad_y 16
        pipeline = make_pipeline(rows=[[32, 32, 16, 8, 0.8]])
        detections = pipeline.detect(sample_frame)

        assert len(detections) == 1
        det = detections[0]
        assert det.bbox.as_tuple() == pytest.approx((48.0, 24.0, 80.0, 40.0))
        assert det.confidence == pytest.approx(0.8)
        assert det.class_id == 0
        assert det.class_name == "drum_head"
        assert det.label == "drum_head - 80.0%"

    def test_at_most_topk_detections(self, sample_frame):
        rows = [[32, 32, 16, 8, 0.9], [10, 30, 4, 4, 0.8], [50, 30, 4, 4, 0.7]]
        pipeline = make_pipeline(rows=rows, params=DetectionParams(topk=2))
        detections = pipeline.detect(sample_frame)
        assert [d.confidence for d in detections] == pytest.approx([0.9, 0.8])

    def test_rows_below_score_threshold_are_dropped(self, sample_frame):
        rows = [[32, 32, 16, 8, 0.05]]
        assert make_pipeline(rows=rows).detect(sample_frame) == []

    def test_class_is_argmax_of_scores(self, sample_frame):
        rows = [[32, 32, 16, 8, 0.2, 0.7]]
        pipeline = make_pipeline(rows=rows, num_classes=2)
        det = pipeline.detect(sample_frame)[0]
        assert det.class_id == 1
        assert det.confidence == pytest.approx(0.7)
        assert det.class_name is None

    def test_latency_recorded(self, sample_frame):
        pipeline = make_pipeline()
        pipeline.detect(sample_frame)
        assert pipeline.last_latency_ms is not None

    def test_shape_mismatch_is_rejected_before_inference(self, sample_frame, monkeypatch):
        pipeline = make_pipeline()
        pipeline.warmup()
        wrong = np.zeros((1, 3, 32, 32), dtype=np.float32)
        monkeypatch.setattr(
            "detection.pipeline.preprocess",
            lambda frame, shape: (wrong, compute_letterbox(128, 64, 32, 32)),
        )

        with pytest.raises(ShapeMismatchError) as exc:
            pipeline.detect(sample_frame)

        assert exc.value.expected == TEST_INPUT_SHAPE
        assert exc.value.actual == (1, 3, 32, 32)
        assert len(pipeline.detector.calls) == 1
        assert pipeline.reducer.calls == []

    def test_falls_back_to_first_output_name(self, sample_frame):
        reducer = make_reducer(rows=[[32, 32, 16, 8, 0.8]])
        reducer.outputs = {"output": reducer.outputs["selected"]}
        pipeline = DetectionPipeline(make_detector(), reducer, input_shape=TEST_INPUT_SHAPE)
        assert len(pipeline.detect(sample_frame)) == 1


class TestValidateInputShape:
    def test_accepts_nchw(self):
        assert validate_input_shape([1, 3, 1024, 1024]) == (1, 3, 1024, 1024)

    @pytest.mark.parametrize("shape", [(1, 1, 64, 64), (2, 3, 64, 64), (1, 3, 0, 64), (3, 64, 64)])
    def test_rejects_other_shapes(self, shape):
        with pytest.raises(ValueError):
            validate_input_shape(shape)
