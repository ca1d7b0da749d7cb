"""
Jukebox Mixer: a collaborative Spotify jukebox driven by guest votes
"""
