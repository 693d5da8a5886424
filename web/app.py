"""Local-only FastAPI shell for the front-running lab.

Exposes the pool calculator, the ordering verifier and simulated scenario
runs as JSON endpoints, plus a small HTML dashboard of the latest verdicts.
"""

from __future__ import annotations

import html
import logging
import threading
from typing import Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel

from amm.engine import InvariantViolationError, create_pool, price_impact, quote_swap, simulate_sandwich
from amm.models import SwapDirection
from ordering.models import Placement
from ordering.verifier import DegenerateComparisonError, check_sequence_preserved, compare
from scenario.orchestrator import ScenarioAbortedError, StateTransitionError
from scenario.presets import UnknownScenarioError, get_scenario, scenario_names
from scenario.simulation import build_simulated_lab

logger = logging.getLogger(__name__)

app = FastAPI(title="IBC Front-Running Lab", description="Local-only lab shell")

_LAST_VERDICTS: Dict[str, List[dict]] = {}
_VERDICTS_LOCK = threading.Lock()


class QuoteRequest(BaseModel):
    amount_in: int
    reserve_in: int
    reserve_out: int


class SandwichRequest(BaseModel):
    reserve_x: int = 2000
    reserve_y: int = 2000
    front_amount: int
    victim_amount: int
    back_amount: Optional[int] = None
    direction: str = SwapDirection.X_TO_Y.value


class PlacementInput(BaseModel):
    height: int
    index: Optional[int] = None

    def to_placement(self) -> Placement:
        return Placement(height=self.height, index=self.index)


class CompareRequest(BaseModel):
    a: PlacementInput
    b: PlacementInput


class SequenceRequest(BaseModel):
    placements: List[PlacementInput]


@app.middleware("http")
async def _local_only(request: Request, call_next):
    client = request.client
    if client is not None:
        host = client.host
        if host not in {"127.0.0.1", "::1", "testclient"}:
            return JSONResponse({"error": "Remote access disabled."}, status_code=403)
    return await call_next(request)


async def _handle_errors(request: Request, exc: Exception):
    return JSONResponse({"error": str(exc)}, status_code=400)


async def _handle_unknown_scenario(request: Request, exc: Exception):
    return JSONResponse({"error": str(exc)}, status_code=404)


for _exc_class in (
    DegenerateComparisonError,
    InvariantViolationError,
    ScenarioAbortedError,
    StateTransitionError,
    TypeError,
    ValueError,
):
    app.add_exception_handler(_exc_class, _handle_errors)
app.add_exception_handler(UnknownScenarioError, _handle_unknown_scenario)


@app.get("/", response_class=HTMLResponse)
async def dashboard() -> HTMLResponse:
    return HTMLResponse(_render_dashboard())


@app.get("/api/status")
async def status():
    return {
        "scenarios": list(scenario_names()),
        "last_runs": {name: len(verdicts) for name, verdicts in _snapshot().items()},
    }


@app.post("/api/amm/quote")
async def amm_quote(payload: QuoteRequest):
    amount_out = quote_swap(payload.amount_in, payload.reserve_in, payload.reserve_out)
    return {"amount_in": payload.amount_in, "amount_out": amount_out}


@app.post("/api/amm/impact")
async def amm_impact(payload: QuoteRequest):
    return {
        "amount_in": payload.amount_in,
        "amount_out": quote_swap(payload.amount_in, payload.reserve_in, payload.reserve_out),
        "price_impact_pct": price_impact(payload.amount_in, payload.reserve_in, payload.reserve_out),
    }


@app.post("/api/amm/sandwich")
async def amm_sandwich(payload: SandwichRequest):
    try:
        direction = SwapDirection(payload.direction)
    except ValueError as exc:
        raise ValueError(f"Unknown swap direction: {payload.direction}") from exc
    pool = create_pool(payload.reserve_x, payload.reserve_y)
    result = simulate_sandwich(
        pool,
        payload.front_amount,
        payload.victim_amount,
        back_amount=payload.back_amount,
        direction=direction,
    )
    return result.to_dict()


@app.post("/api/ordering/compare")
async def ordering_compare(payload: CompareRequest):
    ordering = compare(payload.a.to_placement(), payload.b.to_placement())
    return {"ordering": ordering.value, "first": ordering.first}


@app.post("/api/ordering/sequence")
async def ordering_sequence(payload: SequenceRequest):
    check = check_sequence_preserved([item.to_placement() for item in payload.placements])
    return check.to_dict()


@app.get("/api/scenarios")
async def list_scenarios():
    return {
        "scenarios": [
            {"name": name, "runs": [descriptor.to_dict() for descriptor in get_scenario(name)]}
            for name in scenario_names()
        ]
    }


@app.post("/api/scenarios/{name}/dry-run")
def dry_run_scenario(name: str):
    descriptors = get_scenario(name)
    orchestrator, _ = build_simulated_lab()
    verdicts = [result.to_dict() for result in orchestrator.run_all(descriptors)]
    with _VERDICTS_LOCK:
        _LAST_VERDICTS[name] = verdicts
    logger.info("Dry run of %s produced %d verdict(s)", name, len(verdicts))
    return {"scenario": name, "verdicts": verdicts}


@app.get("/api/scenarios/{name}/last")
async def last_verdicts(name: str):
    get_scenario(name)
    return {"scenario": name, "verdicts": _snapshot().get(name, [])}


def _snapshot() -> Dict[str, List[dict]]:
    with _VERDICTS_LOCK:
        return dict(_LAST_VERDICTS)


def _render_dashboard() -> str:
    latest = _snapshot()
    rows = []
    for name in scenario_names():
        verdicts = latest.get(name)
        if not verdicts:
            rows.append(f"<tr><td>{html.escape(name)}</td><td colspan=\"4\">not run</td></tr>")
            continue
        for verdict in verdicts:
            if verdict.get("aborted"):
                rows.append(
                    f"<tr><td>{html.escape(name)}</td>"
                    f"<td colspan=\"4\">aborted in {html.escape(verdict['state'])}: "
                    f"{html.escape(verdict['reason'])}</td></tr>"
                )
                continue
            rows.append(
                "<tr>"
                f"<td>{html.escape(name)}</td>"
                f"<td>{html.escape(verdict['route'])}</td>"
                f"<td>{html.escape(verdict['ordering'])}</td>"
                f"<td>{html.escape(verdict['severity'])}</td>"
                f"<td>{html.escape(str(verdict['profit']))}</td>"
                "</tr>"
            )
    return f"""<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <title>IBC Front-Running Lab</title>
  <style>
    body {{ font-family: system-ui, sans-serif; margin: 2rem; }}
    table {{ border-collapse: collapse; }}
    td, th {{ border: 1px solid #ccc; padding: 0.3rem 0.6rem; }}
  </style>
</head>
<body>
  <h1>IBC Front-Running Lab</h1>
  <p>Latest simulated verdicts. POST /api/scenarios/&lt;name&gt;/dry-run to refresh.</p>
  <table>
    <tr><th>Scenario</th><th>Route</th><th>Ordering</th><th>Severity</th><th>Profit</th></tr>
    {''.join(rows)}
  </table>
</body>
</html>
"""


def _reset_state() -> None:
    with _VERDICTS_LOCK:
        _LAST_VERDICTS.clear()
