"""
Encrypted backup and restore of the record store.

Three pieces:

- BackupCodec: pure encrypt/decrypt of a JSON payload with a passphrase.
  AES-256-GCM with a PBKDF2-HMAC-SHA256 derived key. The passphrase comes in
  through a BackupConfig at call time; the codec reads no stored state.
- BackupManager: the backup directory. File naming, listing, retention of
  automatic backups.
- BackupService: ties the codec and manager to the repositories and the
  stored backup preferences.

Blob layout (base64 text of):
    magic "MLB1" | iterations (uint32 BE) | salt (16) | nonce (12) | tag (16) | ciphertext
"""
import base64
import binascii
import hashlib
import json
import logging
import os
import sqlite3
import struct
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from repositories import PreferencesRepository, RecordRepository
from models.record import Attachment, VisitRecord
from core.datetime_utils import format_iso, utc_now
from core.exceptions import (
    BackupDecryptError,
    DatabaseError,
    BackupNotFoundError,
    BackupPasswordRequiredError,
    InvalidBackupPreferencesError,
    RestoreNotConfirmedError,
)

logger = logging.getLogger(__name__)

BACKUP_VERSION = 1
MAGIC = b"MLB1"
SALT_SIZE = 16
NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32
MAX_KDF_ITERATIONS = 10_000_000
_HEADER = struct.Struct(">4sI")

AUTO_PREFIX = "auto_backup_"
MANUAL_PREFIX = "manual_backup_"
BACKUP_SUFFIX = ".enc"

PREF_PASSWORD = "backup_password"
PREF_AUTO_BACKUP = "auto_backup"


@dataclass
class BackupConfig:
    """Passphrase and auto-backup flag, passed explicitly to every backup call."""

    password: str = ""
    auto_backup: bool = False

    def validate(self) -> None:
        if self.auto_backup and not self.password:
            raise InvalidBackupPreferencesError()


@dataclass
class BackupFileInfo:
    name: str
    size: int
    is_auto: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "size": self.size, "is_auto": self.is_auto}


@dataclass
class RestoreResult:
    records: int
    attachments: int
    backup_timestamp: Optional[str] = None


# =============================================================================
# CODEC
# =============================================================================

class BackupCodec:
    """Encrypts and decrypts backup payloads."""

    def __init__(self, iterations: int = 200_000):
        self.iterations = iterations

    @staticmethod
    def _derive_key(password: str, salt: bytes, iterations: int) -> bytes:
        return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations, dklen=KEY_SIZE)

    def encrypt(self, payload: Dict[str, Any], config: BackupConfig) -> str:
        """Serialize and encrypt a payload. Returns base64 text."""
        if not config.password:
            raise BackupPasswordRequiredError()

        plaintext = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        salt = os.urandom(SALT_SIZE)
        nonce = os.urandom(NONCE_SIZE)
        key = self._derive_key(config.password, salt, self.iterations)

        encryptor = Cipher(algorithms.AES(key), modes.GCM(nonce)).encryptor()
        encryptor.authenticate_additional_data(MAGIC)
        ciphertext = encryptor.update(plaintext) + encryptor.finalize()

        blob = _HEADER.pack(MAGIC, self.iterations) + salt + nonce + encryptor.tag + ciphertext
        return base64.b64encode(blob).decode("ascii")

    def decrypt(self, blob: str, config: BackupConfig) -> Dict[str, Any]:
        """
        Decrypt and parse a blob.

        Raises:
            BackupPasswordRequiredError: If no passphrase is given.
            BackupDecryptError: On a wrong passphrase, tampering, truncation
                or anything that does not decode to a JSON object.
        """
        if not config.password:
            raise BackupPasswordRequiredError()

        try:
            raw = base64.b64decode(blob.strip(), validate=True)
        except (binascii.Error, ValueError) as e:
            raise BackupDecryptError() from e

        offset = _HEADER.size
        minimum = offset + SALT_SIZE + NONCE_SIZE + TAG_SIZE
        if len(raw) < minimum:
            raise BackupDecryptError()
        magic, iterations = _HEADER.unpack_from(raw)
        if magic != MAGIC or not 1 <= iterations <= MAX_KDF_ITERATIONS:
            raise BackupDecryptError()

        salt = raw[offset:offset + SALT_SIZE]
        offset += SALT_SIZE
        nonce = raw[offset:offset + NONCE_SIZE]
        offset += NONCE_SIZE
        tag = raw[offset:offset + TAG_SIZE]
        ciphertext = raw[offset + TAG_SIZE:]

        key = self._derive_key(config.password, salt, iterations)
        decryptor = Cipher(algorithms.AES(key), modes.GCM(nonce, tag)).decryptor()
        decryptor.authenticate_additional_data(MAGIC)
        try:
            plaintext = decryptor.update(ciphertext) + decryptor.finalize()
        except InvalidTag as e:
            raise BackupDecryptError() from e

        try:
            payload = json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise BackupDecryptError() from e
        if not isinstance(payload, dict):
            raise BackupDecryptError()
        return payload


def build_payload(
    records: List[VisitRecord], attachments: List[Attachment], timestamp: str
) -> Dict[str, Any]:
    """Plaintext backup document. Attachments carry base64 data."""
    return {
        "version": BACKUP_VERSION,
        "timestamp": timestamp,
        "records": [record.to_dict() for record in records],
        "attachments": [attachment.to_dict(include_data=True) for attachment in attachments],
    }


def parse_payload(payload: Dict[str, Any]) -> Tuple[List[VisitRecord], List[Attachment]]:
    """
    Validate a decrypted payload and turn it back into domain objects.

    Every record needs an integer id and every attachment must point at one
    of those records; anything else is treated as a corrupted file.
    """
    raw_records = payload.get("records")
    raw_attachments = payload.get("attachments", [])
    if not isinstance(raw_records, list) or not isinstance(raw_attachments, list):
        raise BackupDecryptError()

    try:
        records = [VisitRecord.from_dict(item) for item in raw_records]
        attachments = [Attachment.from_dict(item) for item in raw_attachments]
    except (AttributeError, TypeError, ValueError, binascii.Error) as e:
        raise BackupDecryptError() from e

    record_ids = set()
    for record in records:
        if not isinstance(record.id, int) or record.id in record_ids:
            raise BackupDecryptError()
        record_ids.add(record.id)
    for attachment in attachments:
        if attachment.record_id not in record_ids:
            raise BackupDecryptError()

    return records, attachments


# =============================================================================
# FILES
# =============================================================================

class BackupManager:
    """
    Backup files in one directory.

    Names encode origin and local creation time, so sorting by name
    descending lists the newest first. Files written in the same second get a
    zero-padded counter (_001, _002, ...) that keeps that order.
    """

    def __init__(
        self,
        backup_dir: str,
        max_auto_backups: int = 30,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.backup_dir = Path(backup_dir)
        self.max_auto_backups = max_auto_backups
        self._clock = clock

    def _path(self, file_name: str) -> Path:
        if (
            not file_name
            or file_name != Path(file_name).name
            or file_name.startswith(".")
            or not file_name.endswith(BACKUP_SUFFIX)
        ):
            raise BackupNotFoundError(file_name)
        return self.backup_dir / file_name

    def list_backups(self) -> List[BackupFileInfo]:
        if not self.backup_dir.is_dir():
            return []
        files = [
            BackupFileInfo(name=p.name, size=p.stat().st_size, is_auto=p.name.startswith(AUTO_PREFIX))
            for p in self.backup_dir.iterdir()
            if p.is_file() and p.name.endswith(BACKUP_SUFFIX)
        ]
        return sorted(files, key=lambda f: f.name, reverse=True)

    def write_backup(self, blob: str, auto: bool = False) -> str:
        """Write a new backup file and return its name. Prunes old auto backups."""
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        stem = (AUTO_PREFIX if auto else MANUAL_PREFIX) + self._clock().strftime("%Y%m%d_%H%M%S")
        file_name = stem + BACKUP_SUFFIX
        counter = 1
        while (self.backup_dir / file_name).exists():
            file_name = f"{stem}_{counter:03d}{BACKUP_SUFFIX}"
            counter += 1

        (self.backup_dir / file_name).write_text(blob, encoding="utf-8")
        logger.info(f"Wrote backup {file_name}")

        if auto:
            self.prune_auto_backups()
        return file_name

    def prune_auto_backups(self) -> List[str]:
        """Delete automatic backups beyond the newest max_auto_backups."""
        auto_backups = [f for f in self.list_backups() if f.is_auto]
        removed = []
        for stale in auto_backups[self.max_auto_backups:]:
            (self.backup_dir / stale.name).unlink(missing_ok=True)
            removed.append(stale.name)
        if removed:
            logger.info(f"Pruned {len(removed)} old automatic backup(s)")
        return removed

    def read_backup(self, file_name: str) -> str:
        path = self._path(file_name)
        if not path.is_file():
            raise BackupNotFoundError(file_name)
        return path.read_text(encoding="utf-8")

    def delete_backup(self, file_name: str) -> None:
        path = self._path(file_name)
        if not path.is_file():
            raise BackupNotFoundError(file_name)
        path.unlink()
        logger.info(f"Deleted backup {file_name}")


# =============================================================================
# SERVICE
# =============================================================================

class BackupService:
    """
    Backup operations over the live store.

    Restore is destructive: it replaces every record and attachment, so it
    must be confirmed explicitly by the caller.
    """

    def __init__(
        self,
        record_repository: RecordRepository,
        preferences_repository: PreferencesRepository,
        manager: BackupManager,
        codec: Optional[BackupCodec] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._records = record_repository
        self._preferences = preferences_repository
        self._manager = manager
        self._codec = codec or BackupCodec()
        self._clock = clock

    # -- preferences ----------------------------------------------------------

    def get_config(self) -> BackupConfig:
        return BackupConfig(
            password=self._preferences.get(PREF_PASSWORD, ""),
            auto_backup=self._preferences.get(PREF_AUTO_BACKUP, "false") == "true",
        )

    def save_config(self, config: BackupConfig) -> BackupConfig:
        """
        Persist backup preferences.

        Raises:
            InvalidBackupPreferencesError: If auto backup is on without a password.
        """
        config.validate()
        if config.password:
            self._preferences.set(PREF_PASSWORD, config.password)
        else:
            self._preferences.delete(PREF_PASSWORD)
        self._preferences.set(PREF_AUTO_BACKUP, "true" if config.auto_backup else "false")
        logger.info(f"Backup preferences saved (auto_backup={config.auto_backup})")
        return config

    def _resolve(self, password: Optional[str]) -> BackupConfig:
        config = self.get_config()
        if password:
            config.password = password
        if not config.password:
            raise BackupPasswordRequiredError()
        return config

    # -- export ---------------------------------------------------------------

    def export_blob(self, password: Optional[str] = None) -> str:
        """Encrypt the whole store. Falls back to the saved password."""
        config = self._resolve(password)
        payload = build_payload(
            self._records.get_all(),
            self._records.get_all_attachments(),
            format_iso(self._clock()),
        )
        return self._codec.encrypt(payload, config)

    def create_backup(self, password: Optional[str] = None, auto: bool = False) -> str:
        """Write an encrypted backup file and return its name."""
        blob = self.export_blob(password)
        return self._manager.write_backup(blob, auto=auto)

    def run_auto_backup(self) -> Optional[str]:
        """
        Automatic backup at startup.

        Skipped (returns None) unless auto backup is enabled, a password is
        saved and there is at least one record.
        """
        config = self.get_config()
        if not config.auto_backup or not config.password:
            logger.debug("Automatic backup disabled")
            return None
        if self._records.count() == 0:
            logger.info("Automatic backup skipped: no records")
            return None
        return self.create_backup(config.password, auto=True)

    def list_backups(self) -> List[BackupFileInfo]:
        return self._manager.list_backups()

    def read_backup(self, file_name: str) -> str:
        return self._manager.read_backup(file_name)

    def delete_backup(self, file_name: str) -> None:
        self._manager.delete_backup(file_name)

    # -- restore --------------------------------------------------------------

    def restore_from_blob(
        self, blob: str, password: Optional[str] = None, confirm: bool = False
    ) -> RestoreResult:
        """
        Replace all records and attachments with the contents of a backup.

        The blob is decrypted and validated completely before anything is
        written; the replacement itself is one transaction.

        Raises:
            RestoreNotConfirmedError: If confirm is not set.
            BackupDecryptError: On a wrong password or corrupted blob.
        """
        if not confirm:
            raise RestoreNotConfirmedError()
        config = self._resolve(password)

        payload = self._codec.decrypt(blob, config)
        records, attachments = parse_payload(payload)
        try:
            self._records.replace_all(records, attachments)
        except sqlite3.Error as e:
            logger.error(f"Restore failed, store left unchanged: {e}")
            raise DatabaseError(operation="restore", reason=str(e)) from e

        logger.info(f"Restored {len(records)} records and {len(attachments)} attachments")
        return RestoreResult(
            records=len(records),
            attachments=len(attachments),
            backup_timestamp=payload.get("timestamp"),
        )

    def restore_from_file(
        self, file_name: str, password: Optional[str] = None, confirm: bool = False
    ) -> RestoreResult:
        if not confirm:
            raise RestoreNotConfirmedError()
        return self.restore_from_blob(self._manager.read_backup(file_name), password, confirm=True)
