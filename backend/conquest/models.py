from conquest import db, bcrypt
from flask_login import UserMixin
from sqlalchemy.orm import validates
from datetime import datetime, timezone
import re

from conquest.services.territories import codec

COLOR_RE = re.compile(r'^#[0-9A-Fa-f]{6}$')


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    display_name = db.Column(db.String(64), nullable=True)
    color = db.Column(db.String(7), nullable=False, default='#FF0000')
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    territories = db.relationship('Territory', back_populates='owner', lazy='dynamic')

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    @validates('color')
    def validate_color(self, key, value):
        if not value or not COLOR_RE.match(value):
            raise ValueError('color must be a hex value like #7B2CBF')
        return value

    @property
    def name(self):
        return self.display_name or self.username

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'name': self.name,
            'color': self.color,
        }


class Territory(db.Model):
    """A single owned polygon on the shared map.

    ``geometry`` holds the WKB of one shapely Polygon in lng/lat order.
    The bounding box columns mirror the geometry and back the spatial
    prefilter used by TerritoryStore.
    """
    __tablename__ = 'territory'
    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    owner_display_name = db.Column(db.String(64), nullable=False)
    owner_color = db.Column(db.String(7), nullable=False)
    display_name = db.Column(db.String(128), nullable=False)
    area_square_meters = db.Column(db.Float, nullable=False)
    geometry = db.Column(db.LargeBinary, nullable=False)
    min_lng = db.Column(db.Float, nullable=False)
    min_lat = db.Column(db.Float, nullable=False)
    max_lng = db.Column(db.Float, nullable=False)
    max_lat = db.Column(db.Float, nullable=False)
    captured_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    owner = db.relationship('User', back_populates='territories')
    runs = db.relationship('Run', back_populates='territory')

    __table_args__ = (
        db.Index('ix_territory_bbox', 'min_lng', 'max_lng', 'min_lat', 'max_lat'),
    )

    @property
    def shape(self):
        return codec.from_wkb(self.geometry)

    def set_shape(self, polygon, area):
        self.geometry = codec.to_wkb(polygon)
        self.min_lng, self.min_lat, self.max_lng, self.max_lat = polygon.bounds
        self.area_square_meters = area

    def to_feature(self):
        return {
            'type': 'Feature',
            'id': self.id,
            'geometry': codec.to_geojson(self.shape),
            'properties': {
                'owner': self.owner.username if self.owner else None,
                'userId': self.owner_id,
                'userName': self.owner_display_name,
                'color': self.owner_color,
                'areaName': self.display_name,
                'capturedAt': self.captured_at.isoformat() if self.captured_at else None,
                'areaM2': round(self.area_square_meters, 2) if self.area_square_meters is not None else None,
            },
        }


class Run(db.Model):
    __tablename__ = 'run'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    # Territories can be merged or stolen away; the run survives them
    territory_id = db.Column(db.Integer, db.ForeignKey('territory.id', ondelete='SET NULL'), nullable=True)
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=True)
    distance = db.Column(db.Float, nullable=False, default=0)
    duration = db.Column(db.Integer, nullable=False, default=0)
    average_pace = db.Column(db.Float, nullable=False, default=0)
    max_speed = db.Column(db.Float, nullable=True)
    elevation_gain = db.Column(db.Float, nullable=True)
    calories = db.Column(db.Integer, nullable=True)
    caption = db.Column(db.String(280), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    territory = db.relationship('Territory', back_populates='runs')
    path_points = db.relationship(
        'RunPathPoint', back_populates='run', order_by='RunPathPoint.sequence_order',
        cascade='all, delete-orphan',
    )

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'territory_id': self.territory_id,
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'distance': self.distance,
            'duration': self.duration,
            'average_pace': self.average_pace,
            'max_speed': self.max_speed,
            'elevation_gain': self.elevation_gain,
            'calories': self.calories,
            'caption': self.caption,
        }


class RunPathPoint(db.Model):
    __tablename__ = 'run_path_point'
    id = db.Column(db.Integer, primary_key=True)
    run_id = db.Column(db.Integer, db.ForeignKey('run.id'), nullable=False, index=True)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    timestamp = db.Column(db.DateTime, nullable=False)
    sequence_order = db.Column(db.Integer, nullable=False)

    run = db.relationship('Run', back_populates='path_points')
