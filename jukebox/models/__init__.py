"""
Database models for Jukebox Mixer
"""

from .database_config import Base, SessionLocal, init_engine, init_db, drop_db, get_db
from .owner_models import Owner, OwnerScope
from .vote_models import Vote, PlayedSong

__all__ = [
    'Base', 'SessionLocal', 'init_engine', 'init_db', 'drop_db', 'get_db',
    'Owner', 'OwnerScope', 'Vote', 'PlayedSong'
]
