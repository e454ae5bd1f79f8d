"""
Blueprints package for the scoreboard application
Contains the admin console and the broadcast overlay routes
"""

from .admin import admin_bp
from .overlay import overlay_bp

__all__ = ['admin_bp', 'overlay_bp']
