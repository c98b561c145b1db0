"""
Stat Event Model
A recorded in-game stat, optionally pinned to a video timestamp
"""

from pydantic import BaseModel
from typing import Optional


class StatEvent(BaseModel):
    """Row from the game stats table"""
    id: str
    game_id: str
    player_id: Optional[str] = None
    custom_player_id: Optional[str] = None
    team_id: Optional[str] = None
    stat_type: str
    modifier: Optional[str] = None
    stat_value: Optional[int] = None
    quarter: int = 1
    game_time_minutes: int = 0
    game_time_seconds: int = 0
    video_timestamp_ms: Optional[int] = None
    is_opponent_stat: bool = False
