"""Per-app service objects, stored in ``app.extensions``."""
from dataclasses import dataclass

from flask import current_app

from treasure_hunt.hunt import TreasureHunt

from .authoring_sessions import SessionRegistry
from .team_store import TeamStore

EXTENSION_KEY = 'treasure_hunt'


@dataclass
class HuntServices:
    hunt: TreasureHunt
    sessions: SessionRegistry
    teams: TeamStore


def get_services() -> HuntServices:
    return current_app.extensions[EXTENSION_KEY]
