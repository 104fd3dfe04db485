"""
Authorization and login-defense engine for the land sales back office.
"""
__version__ = "1.0.0"
