"""Inventory of queries and checks.

Loads queries and checks from a YAML file and optionally persists check
state to a second YAML file, so state survives between cron invocations.
"""

import os
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import yaml
from loguru import logger
from pydantic import ValidationError

from query_health_checks.check_store import CheckStore
from query_health_checks.models.check import Check
from query_health_checks.models.check_state import CheckState
from query_health_checks.models.query import Query


class CheckInventory(CheckStore):
    """Manages the query and check inventory loaded from a YAML file."""

    def __init__(
        self, config_path: Optional[str] = None, state_path: Optional[str] = None
    ) -> None:
        """Initialize inventory from YAML file.

        Args:
            config_path (str, optional): Path to the checks YAML file.
                If None, uses checks.example.yaml in the same directory.
            state_path (str, optional): Path to the YAML file holding check state.
                State is kept in memory only if None.

        Raises:
            FileNotFoundError: If config file not found.
            ValueError: If config file is invalid.
        """
        if config_path is None:
            config_path = os.path.join(
                os.path.dirname(os.path.abspath(__file__)), "checks.example.yaml"
            )

        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Check inventory file not found: {config_path}")

        self.config_path = config_path
        self.state_path = state_path
        self.queries: Dict[str, Query] = {}
        self.checks: Dict[str, Check] = {}
        self._lock = threading.Lock()

        self._load_from_yaml()
        self._load_state()

    @classmethod
    def from_dict(cls, config: Dict[str, Any], state_path: Optional[str] = None) -> "CheckInventory":
        """Build an inventory from an already parsed configuration."""
        inventory = cls.__new__(cls)
        inventory.config_path = None
        inventory.state_path = state_path
        inventory.queries = {}
        inventory.checks = {}
        inventory._lock = threading.Lock()
        inventory._load_config(config)
        inventory._load_state()
        return inventory

    # Loading
    # =====================================================================
    def _load_from_yaml(self) -> None:
        """Load queries and checks from the YAML file.

        Raises:
            ValueError: If YAML is invalid or required fields are missing.
        """
        try:
            with open(self.config_path, "r") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Failed to parse inventory YAML: {e}") from e

        self._load_config(config)

    def _load_config(self, config: Optional[Dict[str, Any]]) -> None:
        if not config or "queries" not in config:
            raise ValueError("Invalid inventory format: missing 'queries' section")

        for query_id, query_config in (config.get("queries") or {}).items():
            try:
                self.queries[query_id] = Query(id=query_id, **query_config)
            except (TypeError, ValidationError) as e:
                raise ValueError(f"Invalid query configuration for {query_id}: {e}") from e

        for check_config in config.get("checks") or []:
            check_id = check_config.get("id") if isinstance(check_config, dict) else None
            try:
                check_config = dict(check_config)
                # Recipients may be given as a list or as the serialized string
                emails = check_config.get("emails")
                if isinstance(emails, list):
                    check_config["emails"] = ", ".join(emails)
                check = Check(**check_config)
            except (TypeError, ValueError) as e:
                raise ValueError(f"Invalid check configuration for {check_id}: {e}") from e

            if check.query_id not in self.queries:
                raise ValueError(
                    f"Check {check.id} references unknown query {check.query_id}"
                )
            if check.id in self.checks:
                raise ValueError(f"Duplicate check id {check.id}")
            self.checks[check.id] = check

    def _load_state(self) -> None:
        """Apply persisted state, if a state file exists."""
        if not self.state_path or not os.path.exists(self.state_path):
            return

        try:
            with open(self.state_path, "r") as f:
                saved = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Failed to parse state YAML: {e}") from e

        for check_id, fields in saved.items():
            check = self.checks.get(check_id)
            if check is None:
                logger.warning(f"[CONFIG] Ignoring saved state for unknown check {check_id}")
                continue
            self.checks[check_id] = check.model_copy(
                update={
                    "state": CheckState(fields.get("state", check.state)),
                    "last_run_at": fields.get("last_run_at"),
                    "state_changed_at": fields.get("state_changed_at"),
                }
            )

    def _save_state(self) -> None:
        if not self.state_path:
            return

        state = {
            check.id: {
                "state": check.state.value,
                "last_run_at": check.last_run_at,
                "state_changed_at": check.state_changed_at,
            }
            for check in self.checks.values()
        }
        with open(self.state_path, "w") as f:
            yaml.safe_dump(state, f, sort_keys=False)

    # Store Interface
    # =====================================================================
    def get_query(self, query_id: str) -> Optional[Query]:
        return self.queries.get(query_id)

    def get_check(self, check_id: str) -> Optional[Check]:
        check = self.checks.get(check_id)
        return check.model_copy() if check else None

    def list_checks(
        self,
        schedule: Optional[str] = None,
        states: Optional[Iterable[CheckState]] = None,
    ) -> List[Check]:
        wanted = set(states) if states is not None else None
        with self._lock:
            return [
                check.model_copy()
                for check in self.checks.values()
                if (schedule is None or check.schedule == schedule)
                and (wanted is None or check.state in wanted)
            ]

    def update_check(self, check_id: str, state: CheckState, last_run_at: datetime) -> Check:
        with self._lock:
            if check_id not in self.checks:
                raise KeyError(f"Check '{check_id}' not found in inventory")
            check = self.checks[check_id]
            update: Dict[str, Any] = {"state": state, "last_run_at": last_run_at}
            if state != check.state:
                update["state_changed_at"] = last_run_at
            check = check.model_copy(update=update)
            self.checks[check_id] = check
            self._save_state()
            return check.model_copy()

    def get_schedules(self) -> List[str]:
        """Get the schedule tiers in use, in first-seen order."""
        schedules: List[str] = []
        for check in self.checks.values():
            if check.schedule not in schedules:
                schedules.append(check.schedule)
        return schedules
