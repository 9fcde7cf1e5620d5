"""
Services package for the meeting feedback engine.

This package contains the stateful parts of the engine:
- State registry: per-participant samples, EMAs, cooldowns and meeting-scoped state
- Feedback pipeline and aggregator: run the detector layers for each event
- Solution context: rolling buffer of explanation turns for the sales detectors
- Delivery: per-meeting buffer of emitted feedback
"""
