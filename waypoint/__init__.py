"""
Waypoint: progression control and adaptive roadmaps for a learning platform.

Decides which content a student may access given a prerequisite graph and
attempt history, and maintains a personalized, topologically valid learning
path that adapts to assessment failures.
"""

__version__ = "0.3.0"
