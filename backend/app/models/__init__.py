"""
Domain models for the team/score store.

Models:
  - TeamNode: One team as written by the game's upstream writer
  - PhysicalScoreEntry: A volunteer's score for a physical challenge
"""
from .base import db, BaseModel, utcnow
from ..services.session_adapter import normalize_session


# Keys of the upstream node that map to columns; everything else lands in ``extra``
NODE_COLUMNS = {
    'teamNumber': 'team_number',
    'teamName': 'team_name',
    'player1': 'player1',
    'player2': 'player2',
    'email': 'email',
    'phoneNumber': 'phone_number',
    'score': 'score',
    'physicalScore': 'physical_score',
    'physicalScoreComment': 'physical_score_comment',
    'createdAt': 'created_at_ms',
}


# ── Models ────────────────────────────────────────────────────────────────────

class TeamNode(BaseModel):
    """A team, serialized the way the realtime tree stores it."""

    __tablename__ = 'teams'

    uid = db.Column(db.String(128), unique=True, nullable=False, index=True)
    team_number = db.Column(db.Integer, nullable=False, default=0)
    team_name = db.Column(db.String(200), nullable=False)
    player1 = db.Column(db.String(200), default='')
    player2 = db.Column(db.String(200), default='')
    email = db.Column(db.String(200), default='')
    phone_number = db.Column(db.String(50), default='')

    # Game-awarded; volunteers never write it
    score = db.Column(db.Integer, nullable=False, default=0)

    physical_score = db.Column(db.Integer, nullable=False, default=0)
    physical_score_comment = db.Column(db.Text, nullable=False, default='')
    created_at_ms = db.Column(db.BigInteger)

    # Session data and any other upstream keys, kept verbatim
    extra = db.Column(db.JSON, nullable=False, default=dict)

    score_entries = db.relationship(
        'PhysicalScoreEntry',
        back_populates='team',
        cascade='all, delete-orphan',
        order_by='PhysicalScoreEntry.id',
    )

    def apply_node(self, node: dict) -> None:
        """Overwrite columns from an upstream node; unknown keys go to ``extra``."""
        extra = {}
        for key, value in node.items():
            if key == 'uid':
                continue
            column = NODE_COLUMNS.get(key)
            if column is None:
                extra[key] = value
            else:
                setattr(self, column, value if value is not None else _column_default(column))
        self.extra = extra

    def to_node(self) -> dict:
        node = dict(self.extra or {})
        node.update({
            'uid': self.uid,
            'teamNumber': self.team_number,
            'teamName': self.team_name,
            'player1': self.player1 or '',
            'player2': self.player2 or '',
            'email': self.email or '',
            'phoneNumber': self.phone_number or '',
            'score': self.score or 0,
            'physicalScore': self.physical_score or 0,
            'physicalScoreComment': self.physical_score_comment or '',
            'createdAt': self.created_at_ms,
        })
        node.pop('Session', None)
        node['session'] = normalize_session(self.extra).to_dict()
        return node

    def to_dict(self, include_relations=False):
        data = self.to_node()
        if include_relations:
            data['scoreEntries'] = [e.to_dict() for e in self.score_entries]
        return data


class PhysicalScoreEntry(BaseModel):
    """One volunteer-awarded score; immutable once finalized."""

    __tablename__ = 'physical_score_entries'

    team_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=False)
    score = db.Column(db.Integer, nullable=False)
    volunteer_name = db.Column(db.String(200), nullable=False, default='')
    benchmark = db.Column(db.String(500), nullable=False, default='')
    is_added = db.Column(db.Boolean, nullable=False, default=False)
    finalized_at = db.Column(db.DateTime)

    team = db.relationship('TeamNode', back_populates='score_entries')

    def to_dict(self):
        data = super().to_dict()
        data.update({
            'uid': self.team.uid if self.team else None,
            'score': self.score,
            'volunteerName': self.volunteer_name,
            'benchmark': self.benchmark,
            'isAdded': self.is_added,
            'finalizedAt': self.finalized_at.isoformat() if self.finalized_at else None,
        })
        return data


def _column_default(column: str):
    if column in ('team_number', 'score', 'physical_score'):
        return 0
    if column == 'created_at_ms':
        return None
    return ''


__all__ = ['db', 'BaseModel', 'TeamNode', 'PhysicalScoreEntry', 'utcnow']
