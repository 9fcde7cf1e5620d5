"""
Utilities package for the meeting feedback engine.

This package contains the detector layers (primary emotions, meta-states,
prosody, long-term, sales), their thresholds, wire types, and the helpers
they share for context-aware thresholds, message wording and embeddings.
"""
