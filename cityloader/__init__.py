"""Processed cities JSON array → Firestore"""
__version__ = "0.1.0"
