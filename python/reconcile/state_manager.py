# reconcile/state_manager.py - the remembered sandbox pointer, shared across processes

import json
import os
from filelock import FileLock, Timeout
from typing import Optional, Dict, Any

from config.app_config import appConfig


def get_sandbox_state() -> Optional[Dict[str, Any]]:
    """
    Reads the remembered sandbox pointer ({sandboxId, url, createdAt}) in a process-safe way.
    Returns None if no sandbox is remembered.
    """
    state_file = appConfig.state.stateFile
    lock = FileLock(appConfig.state.lockFile, timeout=5)
    try:
        if not os.path.exists(state_file):
            return None

        with lock:
            with open(state_file, 'r') as f:
                state = json.load(f)

        if state and state.get('active') and state.get('sandboxId'):
            return state
        return None
    except (IOError, json.JSONDecodeError, Timeout) as e:
        print(f"[state_manager] Error reading state file: {e}")
        return None


def set_sandbox_state(state: Optional[Dict[str, Any]]) -> None:
    """
    Writes the sandbox pointer in a process-safe way.
    Pass None to forget it.
    """
    state_file = appConfig.state.stateFile
    lock = FileLock(appConfig.state.lockFile, timeout=5)
    try:
        os.makedirs(os.path.dirname(state_file) or '.', exist_ok=True)

        with lock:
            with open(state_file, 'w') as f:
                if state:
                    json.dump({**state, 'active': True}, f, indent=2)
                else:
                    json.dump({"active": False, "sandboxId": None, "url": None}, f)
    except (IOError, Timeout) as e:
        print(f"[state_manager] Error writing state file: {e}")
