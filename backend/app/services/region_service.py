# Overview: Service-layer operations for the region catalog.

from __future__ import annotations

from ..extensions import db
from ..models import Region
from ..validation import ValidationError


# Indian states and union territories with their ISO 3166-2:IN subdivision codes
INDIAN_REGIONS = [
    ("Andhra Pradesh", "AP"),
    ("Arunachal Pradesh", "AR"),
    ("Assam", "AS"),
    ("Bihar", "BR"),
    ("Chhattisgarh", "CT"),
    ("Goa", "GA"),
    ("Gujarat", "GJ"),
    ("Haryana", "HR"),
    ("Himachal Pradesh", "HP"),
    ("Jharkhand", "JH"),
    ("Karnataka", "KA"),
    ("Kerala", "KL"),
    ("Madhya Pradesh", "MP"),
    ("Maharashtra", "MH"),
    ("Manipur", "MN"),
    ("Meghalaya", "ML"),
    ("Mizoram", "MZ"),
    ("Nagaland", "NL"),
    ("Odisha", "OR"),
    ("Punjab", "PB"),
    ("Rajasthan", "RJ"),
    ("Sikkim", "SK"),
    ("Tamil Nadu", "TN"),
    ("Telangana", "TG"),
    ("Tripura", "TR"),
    ("Uttar Pradesh", "UP"),
    ("Uttarakhand", "UT"),
    ("West Bengal", "WB"),
    ("Andaman and Nicobar Islands", "AN"),
    ("Chandigarh", "CH"),
    ("Dadra and Nagar Haveli and Daman and Diu", "DH"),
    ("Delhi", "DL"),
    ("Jammu and Kashmir", "JK"),
    ("Ladakh", "LA"),
    ("Lakshadweep", "LD"),
    ("Puducherry", "PY"),
]


def seed_regions() -> int:
    """
    Create catalog rows for every known region.

    Idempotent: Safe to run multiple times. Returns count created.
    """
    created_count = 0
    for name, code in INDIAN_REGIONS:
        existing = db.session.query(Region).filter_by(name=name).first()
        if not existing:
            db.session.add(Region(name=name, code=code, is_active=True))
            created_count += 1

    db.session.commit()
    return created_count


def list_regions(*, include_inactive: bool = False) -> list[Region]:
    query = db.session.query(Region)
    if not include_inactive:
        query = query.filter(Region.is_active.is_(True))
    return query.order_by(Region.name.asc()).all()


def get_region(name: str, *, field: str = "region") -> Region:
    """
    Resolve an active region by name.

    Raises ValidationError for unknown or inactive regions.
    """
    region = db.session.query(Region).filter_by(name=name).first()
    if not region or not region.is_active:
        raise ValidationError(f"Unknown region: {name}", field)
    return region


def resolve_regions(names: list[str], *, field: str = "regions") -> list[Region]:
    """Resolve every name or fail on the first unknown one; order preserved."""
    return [get_region(name, field=field) for name in names]


def set_region_active(name: str, is_active: bool) -> Region:
    region = db.session.query(Region).filter_by(name=name).first()
    if not region:
        raise ValidationError(f"Unknown region: {name}", "region")
    region.is_active = is_active
    db.session.commit()
    return region
