import logging
import random
from dataclasses import dataclass
from typing import List, Optional

from .catalog import load_sites, load_tests, load_demo_scenarios
from .clock import Ticker
from .config import Settings
from .demo import DemoManager, DemoScenario
from .models import SecurityTest
from .panels import PanelStack
from .store import SecurityStore
from .workflows import WorkflowValidator

logger = logging.getLogger("resilience_auditor.runtime")

@dataclass
class Runtime:
    settings: Settings
    store: SecurityStore
    demo: DemoManager
    panels: PanelStack
    validator: WorkflowValidator
    ticker: Ticker

def make_store(settings: Settings, tests: List[SecurityTest], rng: Optional[random.Random] = None) -> SecurityStore:
    def sites_loader():
        return load_sites(settings.sites_source, timeout=settings.request_timeout)
    return SecurityStore(tests=tests, sites_loader=sites_loader, seed=settings.seed, rng=rng)

def build_runtime(settings: Settings, initialize: bool = True) -> Runtime:
    """
    Loads catalogs and wires store, demo, panels, validator and clock together.
    Test/demo catalog errors propagate as DataLoadError; site loading errors
    land in store.state.error.
    """
    tests = load_tests(settings.tests_path, timeout=settings.request_timeout)
    scenarios: List[DemoScenario] = load_demo_scenarios(settings.demos_path, timeout=settings.request_timeout)

    store = make_store(settings, tests)
    demo = DemoManager(scenarios)
    store.attach_demo(demo)
    panels = PanelStack(store)
    # Workflows always run against a private, seeded store
    validator = WorkflowValidator(lambda: make_store(settings, tests, rng=random.Random(settings.seed)), scenarios)
    ticker = Ticker(store, settings.tick_interval)

    if initialize and not store.initialize():
        logger.error("Site data unavailable: %s", store.state.error)
    return Runtime(settings=settings, store=store, demo=demo, panels=panels,
                   validator=validator, ticker=ticker)
