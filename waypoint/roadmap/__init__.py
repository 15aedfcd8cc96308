"""Personalized roadmaps: models, planning, validation and adaptive adjustment."""
