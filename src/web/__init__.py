"""
Web API for the drum-head detector.
"""
