"""
Tests for the detection service, the image slot and runtime startup.
"""

import numpy as np
import pytest

from models.config import Config, DetectionParams
from models.errors import ImageDecodeError, ModelLoadError, PipelineBusyError, SetupError
from models.frame import FrameData
from runtime.context import ImageSlot, RuntimeContext
from runtime.services import DetectionService
from runtime.startup import build_runtime
from web.state import SharedState

from fakes import TEST_INPUT_SHAPE, FailingSession, FakeSession, MockSource, make_pipeline, make_reducer

DRUM_ROW = [32, 32, 16, 8, 0.8]


def _service(pipeline=None, web_state=None, run_async=False):
    ctx = RuntimeContext(config=Config(), pipeline=pipeline or make_pipeline(rows=[DRUM_ROW]), web_state=web_state)
    ctx.service = DetectionService(ctx, run_async=run_async)
    return ctx, ctx.service


class TestImageSlot:
    def test_replace_and_clear(self, sample_frame):
        slot = ImageSlot()
        gen = slot.replace(FrameData.from_numpy(sample_frame, source="a.jpg"))
        assert slot.has_image
        assert slot.encoded().startswith(b"\xff\xd8")
        assert slot.annotated() == slot.encoded()

        slot.clear()
        assert not slot.has_image
        assert slot.encoded() is None
        assert slot.generation == gen + 1

    def test_stale_result_is_discarded(self, sample_frame):
        slot = ImageSlot()
        old = slot.replace(FrameData.from_numpy(sample_frame))
        slot.replace(FrameData.from_numpy(sample_frame))
        assert slot.set_result(old, [object()], b"x") is False
        assert slot.detections() == []


class TestOpenImage:
    def test_open_image_bytes(self, sample_jpeg):
        ctx, service = _service()

        detections = service.open_image(sample_jpeg, name="drum.jpg")

        assert len(detections) == 1
        assert detections[0].class_name == "drum_head"
        assert ctx.lock.locked is False
        assert ctx.image.has_image
        assert ctx.image.snapshot()["source"] == "drum.jpg"
        assert ctx.image.annotated() != ctx.image.encoded()
        assert service.frames_processed == 1

    def test_open_image_path(self, tmp_path, sample_jpeg):
        path = tmp_path / "drum.jpg"
        path.write_bytes(sample_jpeg)
        ctx, service = _service()

        service.open_image(str(path))

        snap = ctx.image.snapshot()
        assert snap["source"] == "drum.jpg"
        assert (snap["width"], snap["height"]) == (128, 64)

    def test_refused_while_busy(self, sample_jpeg):
        ctx, service = _service()
        ctx.lock.acquire()

        with pytest.raises(PipelineBusyError):
            service.open_image(sample_jpeg)

        assert ctx.lock.locked is True
        assert not ctx.image.has_image

    def test_undecodable_image_releases_lock(self):
        ctx, service = _service()
        with pytest.raises(ImageDecodeError):
            service.open_image(b"not an image")
        assert ctx.lock.locked is False

    def test_missing_file(self, tmp_path):
        ctx, service = _service()
        with pytest.raises(ImageDecodeError):
            service.open_image(str(tmp_path / "missing.png"))
        assert ctx.lock.locked is False

    def test_pipeline_error_releases_lock_and_is_reported(self, sample_jpeg):
        state = SharedState()
        pipeline = make_pipeline()
        pipeline.warmup()
        pipeline.detector = FailingSession({})
        ctx, service = _service(pipeline=pipeline, web_state=state)

        with pytest.raises(RuntimeError):
            service.open_image(sample_jpeg)

        assert ctx.lock.locked is False
        assert state.last_error == "inference exploded"
        assert state.processing is False

    def test_result_published_to_web_state(self, sample_jpeg):
        state = SharedState()
        ctx, service = _service(web_state=state)
        service.open_image(sample_jpeg)

        snap = state.snapshot()
        assert len(snap["detections"]) == 1
        assert snap["system_stats"]["frames_processed"] == 1
        assert state.get_annotated_jpeg().startswith(b"\xff\xd8")

    def test_replacing_image_releases_previous_result(self, sample_jpeg):
        ctx, service = _service()
        service.open_image(sample_jpeg, name="first.jpg")
        ctx.pipeline.reducer = make_reducer(rows=[])
        service.open_image(sample_jpeg, name="second.jpg")

        assert ctx.image.snapshot()["source"] == "second.jpg"
        assert ctx.image.detections() == []


class TestCloseImage:
    def test_close_discards_image_and_result(self, sample_jpeg):
        state = SharedState()
        ctx, service = _service(web_state=state)
        service.open_image(sample_jpeg)

        service.close_image()

        assert not ctx.image.has_image
        assert ctx.image.annotated() is None
        assert state.get_annotated_jpeg() is None
        assert state.detections == []

    def test_close_during_inflight_frame_drops_late_result(self, sample_frame):
        ctx, service = _service()
        ctx.pipeline.warmup()
        ctx.pipeline.detector.on_run = service.close_image

        assert ctx.lock.acquire()
        service.submit(FrameData.from_numpy(sample_frame, source="camera"))

        assert ctx.lock.locked is False
        assert not ctx.image.has_image
        assert ctx.image.detections() == []


class TestSubmit:
    def test_async_submit_releases_lock_when_done(self, sample_frame):
        ctx, service = _service(run_async=True)
        results = []
        service.add_callback(lambda fd, dets: results.append(len(dets)))

        assert ctx.lock.acquire()
        service.submit(FrameData.from_numpy(sample_frame, frame_index=1, source="camera"))

        assert ctx.lock.wait_released(timeout=5.0)
        assert results == [1]
        assert len(ctx.image.detections()) == 1

    def test_callback_error_does_not_break_processing(self, sample_frame):
        ctx, service = _service()

        def bad_callback(frame_data, detections):
            raise ValueError("callback failed")

        service.add_callback(bad_callback)
        ctx.lock.acquire()
        service.submit(FrameData.from_numpy(sample_frame))
        assert ctx.lock.locked is False
        assert service.frames_processed == 1


def _session_factory(rows=(DRUM_ROW,)):
    created = []

    def factory(data, providers, name):
        if name.endswith("nms-yolov8.onnx"):
            session = make_reducer(rows=list(rows))
        else:
            session = FakeSession({"output0": np.zeros((1, 5, 16), dtype=np.float32)})
        created.append((name, data, session))
        return session

    factory.created = created
    return factory


@pytest.fixture
def model_dir(tmp_path):
    (tmp_path / "drumhead_nano.onnx").write_bytes(b"detector")
    (tmp_path / "nms-yolov8.onnx").write_bytes(b"reducer")
    return tmp_path


def _config(model_dir):
    config = Config.from_dict({"models": {"base_url": str(model_dir), "input_shape": list(TEST_INPUT_SHAPE)}})
    return config


class TestStartup:
    def test_build_runtime_loads_warms_and_wires(self, model_dir, sample_frame):
        state = SharedState()
        loading = []
        original = state.set_loading
        state.set_loading = lambda text, pct=None: (loading.append((text, pct)), original(text, pct))
        factory = _session_factory()

        ctx = build_runtime(
            _config(model_dir),
            web_state=state,
            source=MockSource([sample_frame]),
            session_factory=factory,
            run_async=False,
        )
        try:
            assert [name.rsplit("/", 1)[-1] for name, _, _ in factory.created] == [
                "drumhead_nano.onnx",
                "nms-yolov8.onnx",
            ]
            assert factory.created[0][1] == b"detector"
            assert ctx.pipeline.is_warm
            assert state.ready is True
            assert state.loading is None
            texts = [t for t, _ in loading]
            assert texts.index("Loading YOLOv8 model") < texts.index("Loading NMS model")
            assert texts[-1] == "Warming up model..."
        finally:
            ctx.close()

    def test_missing_model_is_setup_error(self, tmp_path):
        state = SharedState()
        with pytest.raises(ModelLoadError):
            build_runtime(_config(tmp_path), web_state=state, source=MockSource(), session_factory=_session_factory())
        assert state.ready is False
        assert "Model file not found" in state.setup_error

    def test_warmup_failure_is_setup_error(self, model_dir):
        def factory(data, providers, name):
            return make_reducer() if name.endswith("nms-yolov8.onnx") else FailingSession({})

        with pytest.raises(SetupError, match="warmup"):
            build_runtime(_config(model_dir), source=MockSource(), session_factory=factory)

    def test_capture_flows_through_detection(self, model_dir, sample_frame):
        ctx = build_runtime(
            _config(model_dir),
            source=MockSource([sample_frame]),
            session_factory=_session_factory(),
            run_async=False,
        )
        try:
            ctx.scheduler.start_camera()
            assert ctx.scheduler.wait_until_active(timeout=2.0)
            frame_data = ctx.scheduler.request_capture()

            assert frame_data is not None
            assert ctx.lock.locked is False
            assert len(ctx.image.detections()) == 1
            assert ctx.image.snapshot()["source"] == "mock"
        finally:
            ctx.close()

    def test_detection_params_reach_reducer(self, model_dir, sample_frame):
        config = _config(model_dir)
        config.detection = DetectionParams(topk=4, iou_threshold=0.45, score_threshold=0.3)
        factory = _session_factory()
        ctx = build_runtime(config, source=MockSource(), session_factory=factory, run_async=False)
        try:
            ctx.pipeline.detect(sample_frame)
            reducer = factory.created[1][2]
            assert reducer.calls[0]["config"].tolist() == pytest.approx([4, 0.45, 0.3])
        finally:
            ctx.close()
