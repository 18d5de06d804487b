"""
HealthTrack - medical document intake, extraction and medication adherence
"""

__version__ = "1.0.0"
