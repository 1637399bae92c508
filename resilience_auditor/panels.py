"""
Site Panel Stack
details -> test selection -> test execution, driven by the selected site.
"""
import logging
from contextlib import nullcontext
from enum import Enum
from typing import Dict, Any, Optional

from .store import Action, ActionType, SecurityState

logger = logging.getLogger("resilience_auditor.panels")

class PanelState(str, Enum):
    CLOSED = "closed"
    DETAILS = "details"
    SELECTION = "selection"
    EXECUTION = "execution"

# transition -> (allowed source states, target)
TRANSITIONS = {
    "run_tests": ((PanelState.DETAILS, PanelState.EXECUTION), PanelState.SELECTION),
    "select_test": ((PanelState.SELECTION,), PanelState.EXECUTION),
    "back_to_selection": ((PanelState.EXECUTION,), PanelState.SELECTION),
    "back_to_details": ((PanelState.SELECTION, PanelState.EXECUTION), PanelState.DETAILS),
    "close": (tuple(PanelState), PanelState.CLOSED),
}

class PanelStack:
    def __init__(self, store=None):
        self.store = store
        self.state = PanelState.CLOSED
        self.site_id: Optional[str] = None
        self.test_id: Optional[str] = None
        if store is not None:
            store.subscribe(self._on_store_change)
            self._sync(store.state.selected_site_id)

    def _on_store_change(self, state: SecurityState, action: Action):
        if action.type == ActionType.SELECT_SITE:
            self._sync(state.selected_site_id)

    def _sync(self, site_id: Optional[str]):
        # No selection closes everything; a new selection starts over at details
        if site_id is None:
            self.state = PanelState.CLOSED
            self.test_id = None
        elif site_id != self.site_id or self.state == PanelState.CLOSED:
            self.state = PanelState.DETAILS
            self.test_id = None
        self.site_id = site_id

    def open_site(self, site_id: str):
        if self.store is not None:
            self.store.select_site(site_id)
        else:
            self._sync(site_id)

    def transition(self, name: str, test_id: Optional[str] = None) -> PanelState:
        lock = self.store.lock if self.store is not None else nullcontext()
        with lock:
            return self._transition(name, test_id)

    def _transition(self, name: str, test_id: Optional[str]) -> PanelState:
        if name not in TRANSITIONS:
            raise ValueError(f"Unknown panel transition: {name}")
        sources, target = TRANSITIONS[name]
        if self.state not in sources:
            raise ValueError(f"Cannot {name} from {self.state.value} panel")

        if name == "select_test":
            if not test_id:
                raise ValueError("select_test needs a test id")
            if self.store is not None:
                self.store.run_security_test(self.site_id, test_id)
            self.test_id = test_id
        elif name == "close":
            if self.store is not None and self.site_id is not None:
                # Store subscription moves us to CLOSED
                self.store.select_site(None)
            self.test_id = None
            self.site_id = None
        elif name == "back_to_details":
            self.test_id = None

        logger.debug("Panel %s -> %s", self.state.value, target.value)
        self.state = target
        return self.state

    def run_tests(self) -> PanelState:
        return self.transition("run_tests")

    def select_test(self, test_id: str) -> PanelState:
        return self.transition("select_test", test_id)

    def back_to_selection(self) -> PanelState:
        return self.transition("back_to_selection")

    def back_to_details(self) -> PanelState:
        return self.transition("back_to_details")

    def close(self) -> PanelState:
        return self.transition("close")

    def snapshot(self) -> Dict[str, Any]:
        return {"state": self.state.value, "site_id": self.site_id, "test_id": self.test_id}
