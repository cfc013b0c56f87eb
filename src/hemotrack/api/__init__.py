"""
HemoTrack HTTP API.
"""
