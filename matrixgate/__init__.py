"""
matrixgate - Matrix admission control and owner pairing
"""

__version__ = "0.1.0"
__logo__ = "🔐"
