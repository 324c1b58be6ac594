import os
import glob
import shutil
import signal
import logging
import subprocess

import config

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def setup_logging(level=None, log_file=None):
    """Configure the root logger with a console handler and an optional file."""
    root = logging.getLogger()
    root.setLevel(level or config.LOG_LEVEL)
    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    log_file = log_file or config.LOG_FILE
    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
    return root


def prepare_temp_dir(path=None):
    """Ensure the scratch dir exists and holds no leftover media."""
    path = path or config.TEMP_DIR
    os.makedirs(path, exist_ok=True)
    clear_dir(path)
    logger.info("🧹 Scratch directory ready: %s", path)
    return path


def clear_dir(path):
    if not os.path.isdir(path):
        return 0
    removed = 0
    for f in os.listdir(path):
        target = os.path.join(path, f)
        if os.path.isdir(target) and not os.path.islink(target):
            try:
                shutil.rmtree(target)
                removed += 1
            except OSError as e:
                logger.warning("Failed to remove %s: %s", target, e)
        elif remove_quietly(target):
            removed += 1
    return removed


def remove_quietly(path):
    """Delete a file, logging instead of raising. Returns True if it was removed."""
    if not path:
        return False
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning("Failed to remove %s: %s", path, e)
        return False


def interrupt_process(proc, name):
    """Send SIGINT to a running process; True if a signal was delivered."""
    if proc is None or proc.poll() is not None:
        return False
    try:
        proc.send_signal(signal.SIGINT)
        return True
    except OSError as e:
        logger.warning("Failed to interrupt %s: %s", name, e)
        return False


def stop_process(proc, name, timeout=5.0):
    if proc is None:
        return
    try:
        if proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                proc.kill()
    except OSError as e:
        logger.warning("Failed to stop %s: %s", name, e)


def remove_partials(path):
    """Delete a download target and any yt-dlp fragments beside it (``x.f137.mkv``)."""
    if not path:
        return 0
    stem = os.path.splitext(path)[0]
    removed = 1 if remove_quietly(path) else 0
    for part in glob.glob(glob.escape(stem) + ".*"):
        if remove_quietly(part):
            removed += 1
    return removed
