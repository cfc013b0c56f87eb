"""
HemoTrack: Transfusion Safety & Admission Progress Core

Tracks blood transfusions through a gated safety workflow and derives
length-of-stay, treatment-plan schedule variance and alerts for admitted
patients.
"""

__version__ = "0.1.0"
__author__ = "HemoTrack Team"
