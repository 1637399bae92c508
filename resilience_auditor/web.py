"""
Web Dashboard
Flask app serving the dashboard pages and a JSON API over the store.
"""
import functools
import logging

from flask import Flask, Response, jsonify, request, render_template_string

from .csv_reporting import render_csv
from .html_reporting import render_html
from .mapview import build_map_layers
from .metadata import CATEGORY_KNOWLEDGE_BASE, resilience_status, score_color
from .models import TestCategory, to_jsonable
from .pdf_reporting import render_pdf
from .reporting import build_report, render_json, render_text, REPORT_TYPES

logger = logging.getLogger("resilience_auditor.web")

EXPORTS = {
    "json": (render_json, "application/json", "json"),
    "csv": (render_csv, "text/csv", "csv"),
    "html": (render_html, "text/html", "html"),
    "pdf": (render_pdf, "application/pdf", "pdf"),
    "text": (render_text, "text/plain", "txt"),
}

NAV = [
    ("/", "Dashboard"),
    ("/map", "Security Map"),
    ("/reports", "Reports"),
    ("/demo", "Demo Center"),
    ("/testing", "Workflow Testing"),
]

BASE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>{{ title }} // MCX Security Resilience Auditor</title>
    {% if leaflet %}
    <link rel="stylesheet" href="https://unpkg.com/leaflet@1.9.4/dist/leaflet.css">
    <script src="https://unpkg.com/leaflet@1.9.4/dist/leaflet.js"></script>
    {% endif %}
    <script>
        // Page scripts in <main> run before the end of <body>, so shared helpers load here
        async function api(url, method) {
            const resp = await fetch(url, {method: method || 'GET', headers: {'Content-Type': 'application/json'}, body: arguments[2] ? JSON.stringify(arguments[2]) : undefined});
            return resp.json();
        }
        function esc(value) {
            const d = document.createElement('div');
            d.textContent = value === null || value === undefined ? '' : String(value);
            return d.innerHTML.replace(/"/g, '&quot;').replace(/'/g, '&#39;');
        }
    </script>
    <style>
        :root { --bg: #0f1115; --card: #161b22; --border: #30363d; --text: #c9d1d9; --accent: #58a6ff; --crit: #dc2626; --pass: #22c55e; --warn: #eab308; }
        body { font-family: 'Segoe UI', Inter, sans-serif; background: var(--bg); color: var(--text); margin: 0; display: flex; min-height: 100vh; }
        nav { width: 220px; background: var(--card); border-right: 1px solid var(--border); padding: 20px; }
        nav a { display: block; color: var(--text); text-decoration: none; padding: 8px 10px; border-radius: 4px; margin-bottom: 4px; }
        nav a.active, nav a:hover { background: rgba(88,166,255,0.15); color: #fff; }
        main { flex: 1; padding: 30px; }
        h1, h2, h3 { color: #fff; margin-top: 0; }
        .grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(220px, 1fr)); gap: 20px; margin-bottom: 30px; }
        .card { background: var(--card); border: 1px solid var(--border); border-radius: 6px; padding: 20px; }
        .big { font-size: 2.4rem; font-weight: 800; }
        .muted { opacity: 0.6; font-size: 0.85rem; }
        .badge { padding: 3px 8px; border-radius: 4px; font-weight: bold; font-size: 0.75rem; color: #fff; }
        .sev-critical { background: var(--crit); } .sev-high { background: #ea580c; } .sev-medium { background: #ca8a04; } .sev-low { background: #16a34a; }
        button { background: var(--accent); color: #0f1115; border: 0; border-radius: 4px; padding: 6px 12px; font-weight: 600; cursor: pointer; margin: 2px; }
        button.ghost { background: transparent; color: var(--accent); border: 1px solid var(--accent); }
        table { width: 100%; border-collapse: collapse; }
        th, td { text-align: left; padding: 6px 8px; border-bottom: 1px solid var(--border); }
        .bar { height: 8px; background: #333; border-radius: 4px; overflow: hidden; } .bar div { height: 100%; background: var(--accent); }
        #error { display: none; background: rgba(220,38,38,0.15); border: 1px solid var(--crit); padding: 10px; border-radius: 6px; margin-bottom: 20px; }
    </style>
</head>
<body>
    <nav>
        <h3>MCX Auditor</h3>
        {% for href, label in nav %}<a href="{{ href }}" class="{{ 'active' if href == path else '' }}">{{ label }}</a>{% endfor %}
        <p class="muted" style="margin-top: 30px;">All tests run against a simulated digital twin.</p>
    </nav>
    <main>
        <div id="error"><span id="error-text"></span> <button onclick="api('/api/retry', 'POST').then(() => location.reload())">Retry</button></div>
        {{ body | safe }}
    </main>
    <script>
        async function pollState() {
            const s = await api('/api/state');
            const box = document.getElementById('error');
            box.style.display = s.error ? 'block' : 'none';
            document.getElementById('error-text').textContent = s.error || '';
            // Follow demo navigation
            if (s.demo === 'running' && s.route && s.route !== location.pathname) { location.href = s.route; }
        }
        setInterval(pollState, 2000); pollState();
    </script>
</body>
</html>
"""

DASHBOARD_BODY = """
<h1>Security Dashboard</h1>
<div class="grid">
    <div class="card"><h3>Network Resilience</h3><div class="big" style="color: {{ score_color(kpi.overall_network_resilience) }};">{{ kpi.overall_network_resilience }}</div><div class="muted">{{ resilience_status(kpi.overall_network_resilience) }}</div></div>
    <div class="card"><h3>Critical Sites</h3><div class="big" style="color: var(--crit);">{{ kpi.critical_vulnerabilities }}</div><div class="muted">at critical risk</div></div>
    <div class="card"><h3>Sites At Risk</h3><div class="big" style="color: var(--warn);">{{ kpi.sites_at_risk }}</div><div class="muted">score below 60</div></div>
    <div class="card"><h3>Audit Coverage</h3><div class="big">{{ kpi.last_audit_coverage }}%</div><div class="bar"><div style="width: {{ kpi.last_audit_coverage }}%;"></div></div></div>
</div>
<h2>Threat Alerts</h2>
{% for a in alerts %}
<div class="card" style="margin-bottom: 12px;">
    <span class="badge sev-{{ a.severity.value }}">{{ a.severity.value | upper }}</span>
    <strong>{{ a.title }}</strong> <span class="muted">{{ a.status.value }} // {{ a.affected_sites | join(', ') }}</span>
    <p>{{ a.description }}</p>
    {% if a.status.value == 'active' %}<button onclick="api('/api/alerts/{{ a.id }}/acknowledge', 'POST').then(() => location.reload())">Acknowledge</button>{% endif %}
    {% if a.status.value != 'resolved' %}<button class="ghost" onclick="api('/api/alerts/{{ a.id }}/resolve', 'POST').then(() => location.reload())">Resolve</button>{% endif %}
</div>
{% else %}
<p class="muted">No threat alerts.</p>
{% endfor %}
"""

MAP_BODY = """
<h1>Security Map</h1>
<div style="display: flex; gap: 20px;">
    <div id="map" style="flex: 2; height: 600px; border-radius: 6px;"></div>
    <div class="card" style="flex: 1;" id="panel"><p class="muted">Select a site on the map.</p></div>
</div>
<p><button class="ghost" onclick="toggleCoverage()">Toggle coverage areas</button></p>
<script>
    const TESTS = {{ tests | tojson }};
    const map = L.map('map').setView({{ view.center | tojson }}, {{ view.zoom }});
    L.tileLayer('https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png', {attribution: '&copy; OpenStreetMap'}).addTo(map);
    let layer = L.layerGroup().addTo(map);
    let showCoverage = {{ 'true' if view.show_coverage_areas else 'false' }};

    async function drawMarkers() {
        const data = await api('/api/map/markers');
        layer.clearLayers();
        data.markers.forEach(m => {
            if (showCoverage || m.selected) { L.circle(m.position, m.coverage).addTo(layer); }
            if (m.highlight) { L.circle(m.position, m.highlight).addTo(layer); }
            const opts = Object.assign({}, m.marker);
            if (m.highlighted) { opts.color = '#58a6ff'; opts.weight = 4; }
            L.circleMarker(m.position, opts).addTo(layer)
                .bindTooltip(`${esc(m.name)}: ${m.score}/100`)
                .on('click', () => api(`/api/sites/${m.site_id}/select`, 'POST').then(refresh));
        });
    }
    async function toggleCoverage() { await api('/api/map/coverage', 'POST'); refresh(); }

    async function transition(name, testId) { await api(`/api/panel/${name}`, 'POST', {test_id: testId}); refresh(); }
    async function control(name) { await api(`/api/execution/${name}`, 'POST'); refresh(); }

    async function drawPanel() {
        const p = await api('/api/panel');
        const el = document.getElementById('panel');
        if (p.state === 'closed') { el.innerHTML = '<p class="muted">Select a site on the map.</p>'; return; }
        const site = await api(`/api/sites/${p.site_id}`);
        let html = `<h3>${esc(site.name)}</h3><div class="muted">${site.infrastructure.type} // ${esc(site.area)}</div>`;
        if (p.state === 'details') {
            html += `<p>Recorded score: ${site.security.resilience_score}/100<br>Firmware ${esc(site.technical.firmware_version)}</p>`;
            html += `<button onclick="transition('run_tests')">Run security tests</button><button class="ghost" onclick="transition('close')">Close</button>`;
        } else if (p.state === 'selection') {
            html += '<table>' + TESTS.map(t => `<tr><td>${esc(t.name)}<div class="muted">${t.category} // ${t.estimated_duration}s</div></td><td><button onclick="transition('select_test', '${t.id}')">Run</button></td></tr>`).join('') + '</table>';
            html += `<button class="ghost" onclick="transition('back_to_details')">Back</button>`;
        } else {
            const ex = await api('/api/execution');
            const seq = ex.sequencer;
            if (seq) {
                html += `<h4>${esc(seq.test_name)}</h4><div class="bar"><div style="width: ${seq.progress}%"></div></div>`;
                html += `<p class="muted">${esc(ex.execution.status)} // ${seq.time_remaining}s remaining</p><table>`;
                html += seq.steps.map(s => `<tr><td>${esc(s.name)}</td><td>${s.status}</td><td>${s.score === null ? '' : s.score}</td></tr>`).join('') + '</table>';
                if (seq.result) { html += `<p><strong>Score ${seq.result.score}/100 (${seq.result.status})</strong></p><ul>` + seq.result.recommendations.map(r => `<li>${esc(r)}</li>`).join('') + '</ul>'; }
            }
            html += `<button onclick="control('pause')">Pause</button><button onclick="control('resume')">Resume</button><button class="ghost" onclick="control('stop')">Stop</button>`;
            html += `<button class="ghost" onclick="transition('back_to_selection')">Back</button>`;
        }
        el.innerHTML = html;
    }
    function refresh() { drawMarkers(); drawPanel(); }
    refresh(); setInterval(refresh, 1000);
</script>
"""

REPORTS_BODY = """
<h1>Report Generator</h1>
<div class="card">
    <h3>Report Type</h3>
    {% for t in report_types %}<label style="margin-right: 15px;"><input type="radio" name="type" value="{{ t }}" {{ 'checked' if loop.first else '' }}> {{ t | title }}</label>{% endfor %}
    <h3 style="margin-top: 20px;">Sites</h3>
    <table>
    {% for site, suite in rows %}
        <tr><td><input type="checkbox" name="site" value="{{ site.id }}"></td><td>{{ site.name }}</td>
            <td style="color: {{ score_color(suite.overall_score) }};">{{ suite.overall_score }}</td><td>{{ suite.risk_level.value }}</td></tr>
    {% endfor %}
    </table>
    <p style="margin-top: 20px;">{% for fmt in formats %}<button onclick="exportReport('{{ fmt }}')">{{ fmt | upper }}</button>{% endfor %}</p>
</div>
<script>
    function exportReport(fmt) {
        const sites = [...document.querySelectorAll('input[name=site]:checked')].map(e => e.value).join(',');
        const type = document.querySelector('input[name=type]:checked').value;
        window.open(`/api/reports/${fmt}?sites=${encodeURIComponent(sites)}&type=${type}`);
    }
</script>
"""

DEMO_BODY = """
<h1>Demo Center</h1>
<div class="grid">
{% for s in scenarios %}
    <div class="card"><h3>{{ s.name }}</h3><p class="muted">{{ s.description }} // {{ s.steps | length }} steps // {{ (s.total_duration // 60) | int }}:{{ '%02d' % (s.total_duration % 60) }}</p>
    <button onclick="api('/api/demo/start/{{ s.id }}', 'POST').then(draw)">Start</button></div>
{% endfor %}
</div>
<div class="card" id="demo"></div>
<script>
    async function draw() {
        const d = await api('/api/demo');
        let html = `<h3>State: ${d.state}</h3>`;
        if (d.scenario) {
            html += `<p>${esc(d.scenario.name)}: ${d.progress.current}/${d.progress.total} steps</p><div class="bar"><div style="width: ${d.progress.percentage}%"></div></div>`;
            html += `<p class="muted">Elapsed ${Math.floor(d.elapsed)}s // Remaining ${Math.ceil(d.remaining)}s</p>`;
            if (d.current_step) { html += `<p><strong>${esc(d.current_step.name)}</strong><br>${esc(d.current_step.description)}</p>`; }
            html += ['previous', 'pause', 'resume', 'next', 'stop'].map(c => `<button onclick="api('/api/demo/${c}', 'POST').then(draw)">${c}</button>`).join('');
        }
        document.getElementById('demo').innerHTML = html;
    }
    draw(); setInterval(draw, 1000);
</script>
"""

TESTING_BODY = """
<h1>Workflow Testing</h1>
<p><button onclick="runAll()">Run all workflows</button></p>
<table>
{% for w in workflows %}
    <tr><td>{{ w.name }}<div class="muted">{{ w.description }}</div></td><td>{{ w.steps }} steps</td>
        <td id="res-{{ w.id }}"></td><td><button class="ghost" onclick="runOne('{{ w.id }}')">Run</button></td></tr>
{% endfor %}
</table>
<div class="card" id="summary" style="margin-top: 20px;"></div>
<script>
    function show(r) {
        const failed = r.steps.filter(s => !s.passed && !s.skipped).map(s => `${s.id}: ${esc(s.message)}`);
        document.getElementById('res-' + r.scenario.id).innerHTML =
            (r.success ? '<span class="badge sev-low">PASSED</span>' : '<span class="badge sev-critical">FAILED</span>') +
            ` <span class="muted">${r.duration_ms}ms ${failed.join('; ')}</span>`;
    }
    async function runOne(id) { show(await api(`/api/workflows/run/${id}`, 'POST')); }
    async function runAll() {
        const all = await api('/api/workflows/run', 'POST');
        all.scenarios.forEach(show);
        const s = all.summary;
        document.getElementById('summary').innerHTML = `${s.passed_scenarios}/${s.total_scenarios} workflows passed // ${s.passed_steps}/${s.total_steps} steps // ${s.total_duration_ms}ms`;
    }
</script>
"""

def api_errors(view):
    """Maps store-boundary errors onto JSON responses."""
    @functools.wraps(view)
    def wrapper(*args, **kwargs):
        try:
            return view(*args, **kwargs)
        except KeyError as e:
            return jsonify({"error": str(e.args[0]) if e.args else "Not found"}), 404
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
    return wrapper

def create_app(runtime) -> Flask:
    app = Flask(__name__)
    store = runtime.store
    demo = runtime.demo
    panels = runtime.panels
    validator = runtime.validator

    def page(title, body, leaflet=False, **ctx):
        store.navigate(request.path)
        ctx.update(score_color=score_color, resilience_status=resilience_status)
        rendered = render_template_string(body, **ctx)
        return render_template_string(BASE_TEMPLATE, title=title, body=rendered, nav=NAV,
                                      path=request.path, leaflet=leaflet)

    # --- Pages ---

    @app.route('/')
    def dashboard():
        s = store.state
        return page("Dashboard", DASHBOARD_BODY, kpi=s.kpi_data, alerts=s.threat_alerts)

    @app.route('/map')
    def map_page():
        return page("Security Map", MAP_BODY, leaflet=True, view=store.state.map_view,
                    tests=[t.to_dict() for t in store.tests])

    @app.route('/reports')
    def reports_page():
        rows = [(site, store.get_test_suite(site.id)) for site in store.state.sites]
        return page("Reports", REPORTS_BODY, rows=rows, report_types=REPORT_TYPES, formats=list(EXPORTS))

    @app.route('/demo')
    def demo_page():
        return page("Demo Center", DEMO_BODY, scenarios=demo.available_scenarios())

    @app.route('/testing')
    def testing_page():
        return page("Workflow Testing", TESTING_BODY, workflows=validator.available_scenarios())

    # --- State ---

    @app.route('/api/state')
    def api_state():
        return jsonify(store.summary())

    @app.route('/api/retry', methods=['POST'])
    def api_retry():
        ok = store.retry_operation()
        return jsonify({"success": ok, "state": store.summary()}), (200 if ok else 503)

    # --- Sites / map ---

    @app.route('/api/sites')
    def api_sites():
        return jsonify([s.to_dict() for s in store.state.sites])

    @app.route('/api/sites/<site_id>')
    @api_errors
    def api_site(site_id):
        return jsonify(store.get_site(site_id).to_dict())

    @app.route('/api/sites/<site_id>/select', methods=['POST'])
    @api_errors
    def api_select_site(site_id):
        store.select_site(site_id)
        return jsonify({"selected_site_id": store.state.selected_site_id, "panel": panels.snapshot()})

    @app.route('/api/sites/<site_id>/results')
    @api_errors
    def api_site_results(site_id):
        return jsonify({
            "site_id": site_id,
            "suite": store.get_test_suite(site_id).to_dict(),
            "results": to_jsonable(store.get_test_results(site_id)),
        })

    @app.route('/api/map/markers')
    def api_markers():
        s = store.state
        return jsonify(build_map_layers(s.sites, s.test_suites, s.map_view))

    @app.route('/api/map/coverage', methods=['POST'])
    def api_toggle_coverage():
        return jsonify({"show_coverage_areas": store.toggle_coverage_areas()})

    # --- KPIs / alerts ---

    @app.route('/api/kpis')
    def api_kpis():
        return jsonify(to_jsonable(store.state.kpi_data))

    @app.route('/api/alerts')
    def api_alerts():
        alerts = store.state.threat_alerts
        status = request.args.get("status")
        if status:
            alerts = [a for a in alerts if a.status.value == status]
        return jsonify(to_jsonable(alerts))

    @app.route('/api/alerts/<alert_id>/acknowledge', methods=['POST'])
    @api_errors
    def api_ack_alert(alert_id):
        return jsonify(to_jsonable(store.acknowledge_alert(alert_id)))

    @app.route('/api/alerts/<alert_id>/resolve', methods=['POST'])
    @api_errors
    def api_resolve_alert(alert_id):
        return jsonify(to_jsonable(store.resolve_alert(alert_id)))

    # --- Tests / panels / execution ---

    @app.route('/api/tests')
    @api_errors
    def api_tests():
        tests = store.tests
        category = request.args.get("category")
        if category:
            if category not in CATEGORY_KNOWLEDGE_BASE:
                raise ValueError(f"Unknown category: {category}")
            tests = [t for t in tests if t.category == TestCategory(category)]
        return jsonify([t.to_dict() for t in tests])

    @app.route('/api/panel')
    def api_panel():
        return jsonify(panels.snapshot())

    @app.route('/api/panel/<transition>', methods=['POST'])
    @api_errors
    def api_panel_transition(transition):
        body = request.get_json(silent=True) or {}
        with store.lock:
            panels.transition(transition, body.get("test_id"))
            return jsonify(panels.snapshot())

    def execution_view():
        seq = store.sequencer
        return {
            "execution": to_jsonable(store.state.test_execution),
            "sequencer": seq.snapshot() if seq else None,
        }

    @app.route('/api/execution')
    def api_execution():
        return jsonify(execution_view())

    @app.route('/api/execution/start', methods=['POST'])
    @api_errors
    def api_execution_start():
        body = request.get_json(silent=True) or {}
        site_id = body.get("site_id") or store.state.selected_site_id
        if not site_id:
            raise ValueError("No site selected")
        if "test_id" not in body:
            raise ValueError("test_id is required")
        store.run_security_test(site_id, body["test_id"])
        return jsonify(execution_view())

    @app.route('/api/execution/<command>', methods=['POST'])
    @api_errors
    def api_execution_command(command):
        handlers = {
            "pause": store.pause_test,
            "resume": store.resume_test,
            "stop": store.stop_test,
            "reset": store.reset_test,
        }
        if command not in handlers:
            raise KeyError(f"Unknown execution command: {command}")
        handlers[command]()
        return jsonify(execution_view())

    # --- Demo ---

    @app.route('/api/demo/scenarios')
    def api_demo_scenarios():
        return jsonify([s.to_dict() for s in demo.available_scenarios()])

    @app.route('/api/demo')
    def api_demo():
        return jsonify(demo.snapshot())

    @app.route('/api/demo/start/<scenario_id>', methods=['POST'])
    @api_errors
    def api_demo_start(scenario_id):
        # The ticker thread advances the same manager under this lock
        with store.lock:
            demo.start_scenario(scenario_id)
            return jsonify(demo.snapshot())

    @app.route('/api/demo/<command>', methods=['POST'])
    @api_errors
    def api_demo_command(command):
        handlers = {
            "pause": demo.pause,
            "resume": demo.resume,
            "stop": demo.stop,
            "next": demo.next_step,
            "previous": demo.previous_step,
        }
        if command not in handlers:
            raise KeyError(f"Unknown demo command: {command}")
        with store.lock:
            handlers[command]()
            return jsonify(demo.snapshot())

    # --- Reports ---

    @app.route('/api/reports/<fmt>')
    @api_errors
    def api_report(fmt):
        if fmt not in EXPORTS:
            return jsonify({"error": f"Unsupported format: {fmt}"}), 400
        sites_arg = request.args.get("sites", "")
        site_ids = [s for s in sites_arg.split(",") if s]
        report_type = request.args.get("type", "individual")

        report = build_report(store, site_ids, report_type)
        renderer, mimetype, ext = EXPORTS[fmt]
        try:
            content = renderer(report)
        except Exception:
            logger.exception("Failed to export %s report", fmt)
            return jsonify({"error": "Report export failed"}), 500

        headers = {"Content-Disposition": f"attachment; filename=mcx-security-report.{ext}"}
        return Response(content, mimetype=mimetype, headers=headers)

    # --- Workflows ---

    @app.route('/api/workflows')
    def api_workflows():
        return jsonify(validator.available_scenarios())

    @app.route('/api/workflows/run', methods=['POST'])
    def api_workflows_run_all():
        return jsonify(validator.validate_all())

    @app.route('/api/workflows/run/<scenario_id>', methods=['POST'])
    @api_errors
    def api_workflows_run(scenario_id):
        return jsonify(validator.validate_workflow(scenario_id))

    return app
