import argparse
import datetime
import logging
import os
import signal
import sys
import time

from colorama import Fore, Style, init

from . import __version__
from .catalog import DataLoadError
from .config import load_settings
from .csv_reporting import CsvReporter
from .demo import DemoState
from .html_reporting import HtmlReporter
from .pdf_reporting import PdfReporter
from .reporting import ConsoleReporter, build_report, generate_json_report, render_text, REPORT_TYPES
from .runtime import build_runtime
from .sequencer import SequencerState

VERSION = __version__

BANNER = r"""
  __  __  _______  __      _   _   _ ____ ___ _____ ___  ____
 |  \/  |/ ___\ \/ /     / \ | | | |  _ \_ _|_   _/ _ \|  _ \
 | |\/| | |    \  /     / _ \| | | | | | | |  | || | | | |_) |
 | |  | | |___ /  \    / ___ \ |_| | |_| | |  | || |_| |  _ <
 |_|  |_|\____/_/\_\  /_/   \_\___/|____/___| |_| \___/|_| \_\
    """

LEVEL_COLORS = {
    logging.DEBUG: Fore.CYAN,
    logging.INFO: Fore.GREEN,
    logging.WARNING: Fore.YELLOW,
    logging.ERROR: Fore.RED,
    logging.CRITICAL: Fore.RED + Style.BRIGHT,
}

class ColorFormatter(logging.Formatter):
    def format(self, record):
        color = LEVEL_COLORS.get(record.levelno, "")
        return f"{color}{super().format(record)}{Style.RESET_ALL}"

def setup_logging(level: str = "INFO", verbose: bool = False):
    handler = logging.StreamHandler()
    handler.setFormatter(ColorFormatter("[%(levelname).1s] %(name)s: %(message)s"))
    root = logging.getLogger("resilience_auditor")
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if verbose else getattr(logging, str(level).upper(), logging.INFO))
    root.propagate = False

def signal_handler(sig, frame):
    print("\n[!] Interrupted (Ctrl+C detected)...")
    sys.stdout.flush()
    sys.exit(130)

def print_banner():
    print(f"{Fore.CYAN}{BANNER}")
    print(f"{Fore.CYAN}   MCX SECURITY RESILIENCE AUDITOR v{VERSION}")
    print(f"{Fore.CYAN}       Digital twin simulations only. No live traffic.{Style.RESET_ALL}\n")

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcx-auditor",
        description="MCX Security Resilience Auditor",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("-v", "--version", action="version", version=f"mcx-auditor {VERSION}")
    parser.add_argument("--config", help="Path to YAML config (default: ~/.config/mcx-auditor/config.yaml)")
    parser.add_argument("--sites", dest="sites_path", help="Path to sites YAML")
    parser.add_argument("--tests", dest="tests_path", help="Path to tests YAML")
    parser.add_argument("--demos", dest="demos_path", help="Path to demo scenarios YAML")
    parser.add_argument("--data-url", help="Fetch the sites catalog from this URL")
    parser.add_argument("--seed", type=int, help="Seed for synthetic suites")
    parser.add_argument("--verbose", action="store_true")
    parser.add_argument("--no-banner", action="store_true")

    sub = parser.add_subparsers(dest="command")

    p_serve = sub.add_parser("serve", help="Start the web dashboard")
    p_serve.add_argument("--host")
    p_serve.add_argument("--port", type=int)

    p_run = sub.add_parser("run", help="Run one simulated test against a site")
    p_run.add_argument("--site", required=True, help="Site id (e.g. mcx-001)")
    p_run.add_argument("--test", required=True, help="Test id (e.g. gnss_spoofing)")
    p_run.add_argument("--realtime", action="store_true", help="Wait one tick interval per second of test time")
    p_run.add_argument("--json-report", help="Write the site report as JSON")

    p_report = sub.add_parser("report", help="Export reports")
    p_report.add_argument("--format", default="html", help="Comma separated: json,csv,html,pdf,text")
    p_report.add_argument("--type", default="individual", choices=REPORT_TYPES)
    p_report.add_argument("--site-ids", default="", help="Comma separated site ids (default: all)")
    p_report.add_argument("--output-dir", help="Directory for report files")

    p_demo = sub.add_parser("demo", help="Play a demo scenario headlessly")
    p_demo.add_argument("scenario", nargs="?", help="Scenario id")
    p_demo.add_argument("--list", action="store_true", help="List scenarios")
    p_demo.add_argument("--realtime", action="store_true")

    p_val = sub.add_parser("validate", help="Run workflow validation")
    p_val.add_argument("workflow", nargs="?", help="Workflow id (default: all)")
    return parser

def _settings_from_args(args):
    settings = load_settings(args.config)
    for name in ("sites_path", "tests_path", "demos_path", "data_url", "seed"):
        value = getattr(args, name, None)
        if value is not None:
            setattr(settings, name, value)
    for name in ("host", "port"):
        value = getattr(args, name, None)
        if value is not None:
            setattr(settings, name, value)
    return settings

def cmd_serve(runtime):
    from .web import create_app

    s = runtime.settings
    app = create_app(runtime)
    runtime.ticker.start()
    print(f"[*] Dashboard: http://{s.host}:{s.port}/")
    try:
        app.run(host=s.host, port=s.port, threaded=True, use_reloader=False)
    finally:
        runtime.ticker.stop()
    return 0

def cmd_run(runtime, args):
    store = runtime.store
    store.select_site(args.site)
    seq = store.run_security_test(args.site, args.test)
    print(f"[*] TEST: {seq.test.name} ({seq.test.category.value})")
    print(f"[*] SITE: {store.get_site(args.site).name}")
    print(f"[*] STEPS: {len(seq.steps)} / {seq.total_duration}s")

    shown = 0
    while seq.state == SequencerState.RUNNING:
        store.tick()
        while shown < len(seq.steps) and seq.steps[shown].score is not None:
            step = seq.steps[shown]
            print(f"    [{Fore.GREEN}+{Style.RESET_ALL}] {step.name}: {step.score}/100")
            shown += 1
        if args.realtime:
            time.sleep(runtime.settings.tick_interval)

    result = seq.result
    col = {"passed": Fore.GREEN, "warning": Fore.YELLOW}.get(result.status.value, Fore.RED)
    print(f"\n{Style.BRIGHT}Result: {col}{result.score}/100 {result.status.value.upper()}{Style.RESET_ALL}")
    for rec in result.recommendations:
        print(f"    {Fore.YELLOW}- {rec}{Style.RESET_ALL}")

    if args.json_report:
        generate_json_report(build_report(store, [args.site]), args.json_report)
    return 0

def cmd_report(runtime, args):
    store = runtime.store
    site_ids = [s for s in args.site_ids.split(",") if s]
    report = build_report(store, site_ids, args.type)
    ConsoleReporter().print_summary(report)

    out_dir = args.output_dir or runtime.settings.reports_dir
    os.makedirs(out_dir, exist_ok=True)
    ts = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    base = os.path.join(out_dir, f"mcx_report_{args.type}_{ts}")

    for fmt in [f.strip() for f in args.format.split(",") if f.strip()]:
        if fmt == "json":
            generate_json_report(report, base + ".json")
        elif fmt == "csv":
            CsvReporter(base + ".csv").generate(report)
        elif fmt == "html":
            HtmlReporter(base + ".html").generate(report)
        elif fmt == "pdf":
            PdfReporter(base + ".pdf").generate(report)
        elif fmt == "text":
            with open(base + ".txt", "w", encoding="utf-8") as f:
                f.write(render_text(report))
            print(f"Text summary written to: {base}.txt")
        else:
            print(f"{Fore.RED}[!] Unsupported format: {fmt}{Style.RESET_ALL}")
            return 2
    return 0

def cmd_demo(runtime, args):
    demo = runtime.demo
    if args.list or not args.scenario:
        for s in demo.available_scenarios():
            print(f"  {s.id:18} {s.name} ({len(s.steps)} steps, {int(s.total_duration)}s)")
        return 0

    def on_step_start(step, index):
        runtime.store.demo_binding.execute(step, index)
        print(f"[{index + 1}] {Style.BRIGHT}{step.name}{Style.RESET_ALL} ({step.action}) {step.description}")

    demo.set_callbacks(on_step_start=on_step_start)
    demo.start_scenario(args.scenario)
    while demo.state == DemoState.RUNNING:
        runtime.store.tick()
        if args.realtime:
            time.sleep(runtime.settings.tick_interval)

    print(f"\n{Fore.GREEN}[+] Demo completed in {int(demo.elapsed_time)}s{Style.RESET_ALL}")
    kpi = runtime.store.state.kpi_data
    print(f"    Network resilience {kpi.overall_network_resilience}, sites at risk {kpi.sites_at_risk}")
    return 0

def cmd_validate(runtime, args):
    validator = runtime.validator
    if args.workflow:
        results = [validator.validate_workflow(args.workflow)]
    else:
        results = validator.validate_all()["scenarios"]

    failed = 0
    for r in results:
        mark = f"{Fore.GREEN}PASS{Style.RESET_ALL}" if r["success"] else f"{Fore.RED}FAIL{Style.RESET_ALL}"
        print(f"[{mark}] {r['scenario']['name']} ({r['duration_ms']}ms)")
        for step in r["steps"]:
            if not step["passed"] and not step["skipped"]:
                print(f"      {Fore.RED}{step['id']}: {step['message']}{Style.RESET_ALL}")
        failed += 0 if r["success"] else 1

    print(f"\nPassed: {len(results) - failed}/{len(results)}")
    return 1 if failed else 0

def main(argv=None):
    init(autoreset=True)
    signal.signal(signal.SIGINT, signal_handler)

    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    try:
        settings = _settings_from_args(args)
    except ValueError as e:
        print(f"[!!!] FATAL: {e}")
        return 1
    setup_logging(settings.log_level, args.verbose)

    if not args.no_banner:
        print_banner()

    try:
        runtime = build_runtime(settings)
    except DataLoadError as e:
        print(f"\n[!!!] FATAL: Failed to load catalogs: {e}")
        return 1

    if runtime.store.state.error and args.command != "serve":
        print(f"{Fore.RED}[!] {runtime.store.state.error}{Style.RESET_ALL}")
        return 1
    print(f"[*] SITES: {len(runtime.store.state.sites)}  TESTS: {len(runtime.store.tests)}")

    try:
        if args.command == "serve":
            return cmd_serve(runtime)
        if args.command == "run":
            return cmd_run(runtime, args)
        if args.command == "report":
            return cmd_report(runtime, args)
        if args.command == "demo":
            return cmd_demo(runtime, args)
        if args.command == "validate":
            return cmd_validate(runtime, args)
    except (KeyError, ValueError) as e:
        print(f"{Fore.RED}[!] {e}{Style.RESET_ALL}")
        return 2
    return 1

if __name__ == "__main__":
    sys.exit(main())
