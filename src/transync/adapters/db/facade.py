from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from transync.adapters.db.models import Base, PlaidItem


class DB:
    """Database service layer for Plaid items and their sync cursors."""

    def __init__(self, url: str) -> None:
        """Initialize database connection.

        Args:
            url: Database URL (e.g., "sqlite:///transync.db")
        """
        self._url = url
        self._engine = create_engine(url, echo=False)
        self._session_factory = sessionmaker(bind=self._engine, class_=Session)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Context manager for database sessions."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_schema(self) -> None:
        """Create all tables that do not exist yet."""
        Base.metadata.create_all(self._engine)

    def save_plaid_item(
        self,
        *,
        item_id: str,
        access_token: str,
        institution_id: str | None = None,
        institution_name: str | None = None,
    ) -> PlaidItem:
        """Save or update a Plaid item.

        Replacing the access token of an existing item keeps its cursor.

        Args:
            item_id: Plaid item ID (primary key)
            access_token: Plaid access token
            institution_id: Optional institution ID
            institution_name: Optional institution name

        Returns:
            Created or updated PlaidItem instance
        """
        with self.session() as session:  # type: Session
            item = session.query(PlaidItem).filter_by(item_id=item_id).first()
            if item is None:
                item = PlaidItem(
                    item_id=item_id,
                    access_token=access_token,
                    institution_id=institution_id,
                    institution_name=institution_name,
                )
                session.add(item)
            else:
                item.access_token = access_token
                item.institution_id = institution_id
                item.institution_name = institution_name
                item.updated_at = datetime.now()
            session.flush()
            session.refresh(item)
            session.expunge(item)
            return item

    def get_plaid_item(self, item_id: str) -> PlaidItem | None:
        """Retrieve a Plaid item by item_id.

        Args:
            item_id: Plaid item ID

        Returns:
            PlaidItem instance or None if not found
        """
        with self.session() as session:  # type: Session
            item = session.query(PlaidItem).filter_by(item_id=item_id).first()
            if item:
                session.expunge(item)
            return item

    def list_plaid_items(self) -> list[PlaidItem]:
        """List all Plaid items.

        Returns:
            List of all PlaidItem instances
        """
        with self.session() as session:  # type: Session
            items = session.query(PlaidItem).order_by(PlaidItem.item_id).all()
            for item in items:
                session.expunge(item)
            return items

    def get_sync_cursor(self, item_id: str) -> str | None:
        """Return the stored cursor for an item, None if unset or unknown."""
        with self.session() as session:  # type: Session
            item = session.query(PlaidItem).filter_by(item_id=item_id).first()
            return item.sync_cursor if item else None

    def set_sync_cursor(self, item_id: str, cursor: str | None) -> bool:
        """Overwrite the cursor for an item.

        Args:
            item_id: Plaid item ID
            cursor: New cursor, or None to reset the item to a full sync

        Returns:
            False if no item with this ID exists, True otherwise
        """
        with self.session() as session:  # type: Session
            item = session.query(PlaidItem).filter_by(item_id=item_id).first()
            if item is None:
                return False
            now = datetime.now()
            item.sync_cursor = cursor
            item.cursor_updated_at = now
            item.updated_at = now
            return True

    def touch_last_synced(self, item_id: str, timestamp: datetime) -> bool:
        """Record when the item last completed a run.

        Returns:
            False if no item with this ID exists, True otherwise
        """
        with self.session() as session:  # type: Session
            item = session.query(PlaidItem).filter_by(item_id=item_id).first()
            if item is None:
                return False
            item.last_synced_at = timestamp
            return True
