"""Registry of collections that hold records belonging to an event.

The cascade engine, the backup writer and the recovery service all walk this
list, so a collection added to the data model must be added here or its
records will be orphaned on deletion and missing from backups.
"""

from __future__ import annotations

from typing import NamedTuple, Tuple

REGISTRY_VERSION = "2024.1"

ROOT_COLLECTION = "events"

PRIMARY_KEY = "id"


class CollectionSpec(NamedTuple):
    """One dependent collection.

    Attributes:
        name: Collection name in the document store
        foreign_keys: Fields whose value is the event id
        clear_only: Records are kept and the foreign key fields are unset
            instead of deleting the record
    """

    name: str
    foreign_keys: Tuple[str, ...] = ("event",)
    clear_only: bool = False

    @property
    def foreign_key(self) -> str:
        return self.foreign_keys[0]


def _spec(name: str, field: str = "event") -> CollectionSpec:
    return CollectionSpec(name=name, foreign_keys=(field,))


DEPENDENT_COLLECTIONS: Tuple[CollectionSpec, ...] = (
    # Resources
    _spec("resources"),
    _spec("resource_blockings"),
    _spec("resource_settings"),
    # Registrations and payments
    _spec("registrations"),
    _spec("payments"),
    _spec("payment_links"),
    _spec("payment_plans"),
    _spec("seat_holds"),
    # Abstracts
    _spec("abstracts"),
    _spec("abstract_reviews"),
    # Configuration
    _spec("categories"),
    _spec("category_prices"),
    _spec("custom_fields"),
    _spec("schedules"),
    _spec("workshops"),
    # Communication
    _spec("announcements"),
    _spec("event_announcements"),
    _spec("notification_templates"),
    _spec("notification_workflows"),
    _spec("notification_logs"),
    _spec("scheduled_notifications"),
    _spec("admin_notifications"),
    # Templates and pages
    _spec("badge_templates"),
    _spec("event_templates", "base_event"),
    _spec("landing_pages"),
    _spec("certificates"),
    _spec("event_sponsors"),
    # Reporting
    _spec("event_reports"),
    _spec("reports"),
    _spec("reconciliation_reports"),
    _spec("analytics_data_caches"),
    _spec("dashboards"),
    _spec("import_jobs"),
    # Access
    _spec("event_clients"),
    _spec("author_users"),
    _spec("pricing_tiers"),
    _spec("event_resources"),
)

# Users outlive the event; only their pointers at it are cleared.
USER_REFERENCES = CollectionSpec(
    name="users",
    foreign_keys=("active_event", "last_event_accessed"),
    clear_only=True,
)

REGISTRY: Tuple[CollectionSpec, ...] = DEPENDENT_COLLECTIONS + (USER_REFERENCES,)


def get_spec(name: str) -> CollectionSpec:
    """Look up a registry entry by collection name.

    Raises:
        KeyError: If the collection is not registered
    """
    for spec in REGISTRY:
        if spec.name == name:
            return spec
    raise KeyError(name)


def reference_query(spec: CollectionSpec, target_id: str) -> dict:
    """Query matching every record of ``spec`` that points at ``target_id``."""
    if len(spec.foreign_keys) == 1:
        return {spec.foreign_key: target_id}
    return {"$or": [{field: target_id} for field in spec.foreign_keys]}
