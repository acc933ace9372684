"""Archive validation and extraction helpers for mautic-deployer."""

import os
import shutil
import zipfile
from pathlib import Path

from mauticdeployer.errors import ExtensionError

ZIP_SIGNATURES = (b"PK\x03\x04", b"PK\x05\x06")


class ArchiveService:
    """Encapsulates safe archive extraction logic."""

    def is_zip_archive(self, path: str) -> bool:
        """Checks the file signature instead of trusting the URL or headers."""
        try:
            with open(path, "rb") as file_obj:
                header = file_obj.read(4)
        except OSError:
            return False
        return header in ZIP_SIGNATURES and zipfile.is_zipfile(path)

    def is_within_dir(self, base_dir: Path, candidate: Path) -> bool:
        try:
            return os.path.commonpath([str(base_dir), str(candidate)]) == str(base_dir)
        except ValueError:
            return False

    def safe_extract_zip(self, zip_path: str, destination_dir: str):
        base = Path(destination_dir).resolve()

        try:
            with zipfile.ZipFile(zip_path, "r") as zip_ref:
                for member in zip_ref.infolist():
                    normalized_name = member.filename.replace("\\", "/")
                    target_path = (base / normalized_name).resolve()

                    if not self.is_within_dir(base, target_path):
                        raise ExtensionError(
                            f"Unsafe ZIP entry detected: `{member.filename}`. "
                            "Archive extraction aborted to prevent path traversal."
                        )

                    file_type = (member.external_attr >> 16) & 0o170000
                    if file_type == 0o120000:
                        raise ExtensionError(
                            f"Unsafe ZIP entry detected: `{member.filename}` is a symbolic link."
                        )

                for member in zip_ref.infolist():
                    normalized_name = member.filename.replace("\\", "/")
                    target_path = (base / normalized_name).resolve()

                    if member.is_dir() or normalized_name.endswith("/"):
                        target_path.mkdir(parents=True, exist_ok=True)
                        continue

                    target_path.parent.mkdir(parents=True, exist_ok=True)
                    with zip_ref.open(member, "r") as src, open(target_path, "wb") as dst:
                        shutil.copyfileobj(src, dst)
        except zipfile.BadZipFile as exc:
            raise ExtensionError(f"Invalid ZIP archive: {zip_path}") from exc

    def unwrap_single_directory(self, root: str) -> str:
        """Returns the only visible child of ``root`` when it is a directory, else ``root``."""
        items = [item for item in os.listdir(root) if not item.startswith(".") and item != "__MACOSX"]
        if len(items) == 1:
            candidate = os.path.join(root, items[0])
            if os.path.isdir(candidate):
                return candidate
        return root

    def merge_tree(self, source_dir: str, destination_dir: str):
        os.makedirs(destination_dir, exist_ok=True)
        for item in os.listdir(source_dir):
            if item == "__MACOSX":
                continue
            src_path = os.path.join(source_dir, item)
            dst_path = os.path.join(destination_dir, item)
            if os.path.isdir(src_path):
                shutil.copytree(src_path, dst_path, dirs_exist_ok=True)
            else:
                shutil.copy2(src_path, dst_path)
