"""
Runtime wiring: shared context, the detection service, and startup.
"""
