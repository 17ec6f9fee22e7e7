"""
Share link repository.
"""

import uuid
from typing import Optional

from chatledger.db.repositories.base import BaseRepository
from chatledger.models.db import ShareLink, utc_now


class ShareLinkRepository(BaseRepository[ShareLink]):
    """Repository for ShareLink model."""

    def __init__(self, uow):
        super().__init__(ShareLink, uow)

    def get_by_url(self, url: str) -> Optional[ShareLink]:
        return self.session.query(ShareLink).filter(ShareLink.url == url).first()

    def upsert(
        self,
        url: str,
        provider: str,
        share_id: str,
        title: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> tuple[ShareLink, bool]:
        """
        Get or create the share link for a URL (URLs are unique).

        Returns:
            Tuple of (share_link, created)
        """
        link = self.get_by_url(url)
        if link is not None:
            if title and link.title != title:
                link.title = title
                self.session.flush()
            return link, False
        link = self.create(
            url=url,
            provider=provider,
            share_id=share_id,
            title=title,
            extra_data=metadata or {},
        )
        return link, True

    def mark_imported(self, link: ShareLink, session_id: uuid.UUID) -> ShareLink:
        link.session_id = session_id
        link.imported = True
        link.imported_at = utc_now()
        self.session.flush()
        return link
