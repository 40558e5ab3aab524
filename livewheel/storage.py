import json
import logging
import os
import shutil
import threading
from datetime import datetime

logger = logging.getLogger(__name__)

file_lock = threading.RLock()


def create_backup(filename):
    """Create a timestamped backup of a JSON file"""
    if os.path.exists(filename):
        backup_path = f"{filename}.{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}.bak"
        try:
            shutil.copy2(filename, backup_path)
            logger.info(f"💾 Backup created: {backup_path}")
            return backup_path
        except OSError as e:
            logger.error(f"💥 Backup creation failed: {e}")
    return None


def load_json_file(filename, default_data, expected_type=None):
    """
    Load a JSON file, creating it with defaults when missing.

    A file that fails to parse (or holds the wrong top-level type) is backed
    up and reset to the defaults.
    """
    with file_lock:
        if not os.path.exists(filename):
            save_json_file(filename, default_data)
            return default_data
        try:
            with open(filename, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if expected_type is not None and not isinstance(data, expected_type):
                raise json.JSONDecodeError(f"Invalid format for {filename}", filename, 0)
            return data
        except json.JSONDecodeError:
            logger.error(f"🚨 CORRUPTION: '{filename}' corrupted. Auto-recovering...")
            backup_path = create_backup(filename)
            if backup_path:
                logger.info(f"🔒 Corrupted file backed up as: {backup_path}")
            save_json_file(filename, default_data, backup=False)
            logger.info("✅ Recovery complete. File reset to defaults.")
            return default_data
        except OSError as e:
            logger.error(f"💥 IO ERROR reading '{filename}': {e}")
            return default_data


def save_json_file(filename, data, backup=False):
    """Save JSON file atomically; returns False instead of raising on failure"""
    with file_lock:
        temp_filename = f"{filename}.tmp"
        try:
            # fail on unserializable data before touching the file
            json.dumps(data, indent=2, ensure_ascii=False)

            if backup and os.path.exists(filename):
                create_backup(filename)

            directory = os.path.dirname(filename)
            if directory:
                os.makedirs(directory, exist_ok=True)

            with open(temp_filename, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(temp_filename, filename)
            logger.debug(f"💾 File saved successfully: {filename}")
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"💥 Save error for '{filename}': {e}")
            if os.path.exists(temp_filename):
                try:
                    os.remove(temp_filename)
                except OSError:
                    pass
            return False
