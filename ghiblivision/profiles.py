"""
Profile Store
Free-usage counters, subscription tiers and stored provider keys per user.

Profiles are JSON documents, kept in Azure Blob Storage when
AZURE_STORAGE_CONNECTION_STRING is set and on the local disk otherwise.
"""
import json
import logging
import os
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, Optional

from azure.core import MatchConditions
from azure.core.exceptions import ResourceExistsError, ResourceModifiedError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient

logger = logging.getLogger(__name__)

FREE_TIER = "free"
MAX_UPDATE_ATTEMPTS = 5


class ProfileUpdateConflict(Exception):
    """Raised when a profile keeps changing underneath a conditional write."""


def free_generations_limit() -> int:
    raw = os.getenv("FREE_GENERATIONS_LIMIT", "1")
    try:
        return max(0, int(raw))
    except ValueError:
        logger.warning(f"Invalid FREE_GENERATIONS_LIMIT {raw!r}, using 1")
        return 1


@dataclass
class Profile:
    """A user's usage and billing state."""
    user_id: str
    subscription_tier: str = FREE_TIER
    free_generations_used: int = 0
    custom_api_keys: Dict[str, str] = field(default_factory=dict)

    def stored_key(self, provider: str) -> Optional[str]:
        return self.custom_api_keys.get(provider) or None

    def free_generations_left(self, limit: int) -> int:
        return max(0, limit - self.free_generations_used)

    def consumes_free_generation(self, provider: str, caller_key: Optional[str] = None) -> bool:
        """True when a request would be paid for out of the free allowance."""
        if caller_key or self.stored_key(provider):
            return False
        return self.subscription_tier == FREE_TIER

    @classmethod
    def from_dict(cls, data: dict) -> "Profile":
        return cls(
            user_id=data["user_id"],
            subscription_tier=data.get("subscription_tier", FREE_TIER),
            free_generations_used=int(data.get("free_generations_used", 0)),
            custom_api_keys=dict(data.get("custom_api_keys") or {}),
        )


class ProfileStore:
    def __init__(
        self,
        connection_string: Optional[str] = None,
        container_name: Optional[str] = None,
        local_storage_path: Optional[Path] = None,
    ):
        # Allow switching between Local and Azure via env var
        self.connection_string = connection_string or os.getenv("AZURE_STORAGE_CONNECTION_STRING")
        self.container_name = container_name or os.getenv("PROFILE_CONTAINER_NAME", "profiles")
        self.local_storage_path = Path(
            local_storage_path or os.getenv("PROFILE_LOCAL_PATH", "local_storage/profiles")
        )

        if self.connection_string:
            logger.info("Initializing Azure Blob profile store...")
            self.blob_service_client = BlobServiceClient.from_connection_string(self.connection_string)
            self.container_client = self.blob_service_client.get_container_client(self.container_name)
            if not self.container_client.exists():
                self.container_client.create_container()
            self.mode = "AZURE"
        else:
            logger.info("No connection string found. Using LOCAL profile store.")
            self.mode = "LOCAL"
            self.local_storage_path.mkdir(parents=True, exist_ok=True)
        self._local_lock = threading.Lock()

    def _blob_name(self, user_id: str) -> str:
        return f"{user_id}.json"

    def _read(self, user_id: str) -> Optional[bytes]:
        if self.mode == "AZURE":
            blob_client = self.container_client.get_blob_client(self._blob_name(user_id))
            try:
                return blob_client.download_blob().readall()
            except ResourceNotFoundError:
                return None
        else:
            file_path = self.local_storage_path / self._blob_name(user_id)
            if file_path.exists():
                return file_path.read_bytes()
            return None

    def _write(self, user_id: str, data: bytes):
        if self.mode == "AZURE":
            blob_client = self.container_client.get_blob_client(self._blob_name(user_id))
            blob_client.upload_blob(data, overwrite=True)
        else:
            (self.local_storage_path / self._blob_name(user_id)).write_bytes(data)

    def get_profile(self, user_id: str) -> Profile:
        """Read a profile; users without one get a fresh free-tier profile."""
        raw = self._read(user_id)
        if raw is None:
            return Profile(user_id=user_id)
        return Profile.from_dict(json.loads(raw))

    def save_profile(self, profile: Profile):
        self._write(profile.user_id, json.dumps(asdict(profile)).encode("utf-8"))

    def increment_free_usage(self, user_id: str) -> Profile:
        """
        Count one more free generation against the user.

        In AZURE mode the write is conditional on the ETag that was read, so
        two instances incrementing the same profile cannot lose an update. A
        conflicting write is retried from a fresh read.
        """
        if self.mode == "AZURE":
            profile = self._increment_blob(user_id)
        else:
            with self._local_lock:
                profile = self.get_profile(user_id)
                profile.free_generations_used += 1
                self.save_profile(profile)
        logger.info(f"User {user_id} has used {profile.free_generations_used} free generation(s)")
        return profile

    def _increment_blob(self, user_id: str) -> Profile:
        blob_client = self.container_client.get_blob_client(self._blob_name(user_id))

        for attempt in range(1, MAX_UPDATE_ATTEMPTS + 1):
            try:
                downloader = blob_client.download_blob()
                profile = Profile.from_dict(json.loads(downloader.readall()))
                etag = downloader.properties.etag
            except ResourceNotFoundError:
                profile = Profile(user_id=user_id)
                etag = None

            profile.free_generations_used += 1
            data = json.dumps(asdict(profile)).encode("utf-8")
            try:
                if etag is None:
                    # Only create; fails if another writer created it first
                    blob_client.upload_blob(data, overwrite=False)
                else:
                    blob_client.upload_blob(
                        data, overwrite=True, etag=etag, match_condition=MatchConditions.IfNotModified
                    )
                return profile
            except (ResourceModifiedError, ResourceExistsError):
                logger.warning(f"Profile {user_id} changed during update (attempt {attempt}), retrying")

        raise ProfileUpdateConflict(f"Could not update profile {user_id} after {MAX_UPDATE_ATTEMPTS} attempts")
