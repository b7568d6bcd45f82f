import logging
import time
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, File, UploadFile, WebSocket, WebSocketDisconnect, HTTPException
from fastapi.middleware.cors import CORSMiddleware

import config
import charts
from accuracy import ACCURACIES, DEFAULT_ACCURACY, Accuracy, pick_accuracy, resolve_accuracy
from database import get_db, init_db, insert_measurements, fetch_links, fetch_liveness, fetch_stats
from load_data import HEADER, parse_line
from marshaller import marshal
from schemas import ChartsRequest, ChartsResponse, ChartsUpdateRequest, DagreResponse

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Initialize the database
    init_db()
    yield

app = FastAPI(title="Pipeline Dashboard API", lifespan=lifespan)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

def chart_response(metric: str, result: charts.ChartResult) -> dict:
    return {
        "metric": metric,
        "chart": result.chart,
        "paths": result.paths,
        "context": vars(result.context),
    }

def accuracy_for(time_from: int, time_to: int, accuracy: Optional[int]) -> int:
    """Use the requested accuracy or pick one based on the time range."""
    if accuracy:
        return accuracy
    return pick_accuracy(time_to - time_from).ms

@app.get("/")
async def root():
    """Root endpoint to check if the API is running."""
    return {"message": "Pipeline Dashboard API is running"}

@app.get("/metrics")
async def get_metrics():
    """List metrics that can be charted."""
    return {"metrics": charts.METRICS, "accuracies": {a.symbol: a.ms for a in ACCURACIES.values()}}

@app.post("/charts", response_model=ChartsResponse)
async def get_charts(request: ChartsRequest):
    """
    Build charts for every requested metric from `time_from` to `time_to` (milliseconds).
    If no accuracy is provided, one will be automatically selected based on the time range.
    """
    accuracy = accuracy_for(request.time_from, request.time_to, request.accuracy)

    with get_db() as conn:
        results = charts.query(conn, request.metrics, request.time_from, request.time_to, accuracy)

    return {
        "charts": [chart_response(metric, result) for metric, result in zip(request.metrics, results)],
        "accuracy": accuracy,
    }

@app.post("/charts/update", response_model=ChartsResponse)
async def update_charts(request: ChartsUpdateRequest):
    """
    Extend charts previously returned by `/charts` with data up to `time_to`.
    The client sends back the contexts it received, they carry the accumulated state.
    """
    if not request.contexts:
        raise HTTPException(status_code=400, detail="No chart contexts to update")

    accuracies = {context.accuracy for context in request.contexts}
    if len(accuracies) > 1:
        raise HTTPException(status_code=400, detail="All chart contexts must share the same accuracy")

    responses = []
    with get_db() as conn:
        for schema in request.contexts:
            context = charts.ChartContext(**schema.model_dump())
            result = charts.query_update(conn, context, request.time_to, request.time_from)
            responses.append(chart_response(context.metric, result))

    return {"charts": responses, "accuracy": accuracies.pop()}

@app.get("/dagre", response_model=DagreResponse)
async def get_dagre(time_from: int, time_to: int):
    """Marshal links reported between `time_from` and `time_to` into a dagre graph."""
    if time_to < time_from:
        raise HTTPException(status_code=400, detail="time_to must not be earlier than time_from")

    with get_db() as conn:
        links = fetch_links(conn, time_from, time_to)
        liveness = fetch_liveness(conn, time_from, time_to)

    return marshal(links, liveness)

@app.post("/upload")
async def upload_data(file: UploadFile = File(...)):
    """
    Upload a CSV file with columns: Time,Metric,Path,Value
    Time is UNIX time in milliseconds.
    """
    if not file.filename.endswith('.csv'):
        raise HTTPException(status_code=400, detail="Only CSV files are supported")

    batch_size = 100_000
    batch = []
    total_processed = 0

    content = await file.read()
    lines = content.decode('utf-8').splitlines()

    # Skip header
    if lines and lines[0].startswith(HEADER):
        lines = lines[1:]

    with get_db() as conn:
        for line in lines:
            if not line.strip():
                continue

            try:
                batch.append(parse_line(line))
            except ValueError:
                logger.warning("Skipping malformed line: %s", line.strip())
                continue

            if len(batch) >= batch_size:
                total_processed += insert_measurements(conn, batch)
                batch = []

        # Insert any remaining records
        total_processed += insert_measurements(conn, batch)

    return {"status": "success", "message": f"File uploaded and processed. {total_processed} records inserted."}

@app.get("/stats")
async def get_stats():
    """
    Get basic statistics about stored measurements.
    """
    with get_db() as conn:
        return fetch_stats(conn)

# Store active WebSocket connections and their state
active_connections = {}

async def send_charts(websocket: WebSocket, conn_state: dict, results: List[charts.ChartResult]):
    """Send charts in chunks of rows followed by an empty chunk and the used accuracy."""
    accuracy: Accuracy = conn_state["accuracy"]
    chunk_size = config.WS_CHUNK_SIZE

    for result in results:
        metric = result.context.metric
        conn_state["contexts"][metric] = result.context

        rows = result.chart["data"]
        for i in range(0, len(rows), chunk_size):
            await websocket.send_json({
                "metric": metric,
                "series": result.chart["series"][i:i + chunk_size],
                "data": rows[i:i + chunk_size],
                "offset": i,
            })

    # Send an empty chunk to signal the end of data
    await websocket.send_json([])

    await websocket.send_json({"accuracy": accuracy.symbol, "accuracy_ms": accuracy.ms})

async def reload_charts(websocket: WebSocket, conn_state: dict):
    """Query all charts of the connection from scratch with its current accuracy and range."""
    with get_db() as conn:
        results = charts.query(
            conn,
            conn_state["metrics"],
            conn_state["time_from"],
            conn_state["time_to"],
            conn_state["accuracy"].ms,
        )
    await send_charts(websocket, conn_state, results)

@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for live charts.
    Client loads charts for a time range and then asks for updates which only carry new data.
    Also supports actions like set_accuracy, move_up_accuracy, dagre, etc.
    """
    await websocket.accept()

    # Generate a unique connection ID
    conn_id = id(websocket)

    # Initialize connection state, contexts keep accumulators of every metric's chart
    conn_state = {
        "accuracy": DEFAULT_ACCURACY,
        "metrics": [],
        "time_from": 0,
        "time_to": 0,
        "contexts": {},
        "last_fetch_time": time.time()
    }

    # Store the connection
    active_connections[conn_id] = conn_state

    try:
        while True:
            # Wait for a request from the client
            data = await websocket.receive_json()

            # Extract the action
            action = data.get("action", "load")

            if action == "load":
                time_from = data.get("time_from", 0)
                time_to = data.get("time_to", 0)
                accuracy_value = data.get("accuracy")

                # If no accuracy provided, pick one based on the time range
                if accuracy_value is None:
                    accuracy = pick_accuracy(time_to - time_from)
                else:
                    accuracy = resolve_accuracy(accuracy_value)

                if accuracy is None:
                    await websocket.send_json({
                        "error": f"Invalid accuracy. Valid options are: {', '.join(ACCURACIES.keys())}"
                    })
                    continue

                conn_state.update({
                    "accuracy": accuracy,
                    "metrics": data.get("metrics") or charts.METRICS,
                    "time_from": time_from,
                    "time_to": time_to,
                    "contexts": {},
                    "last_fetch_time": time.time(),
                })
                await reload_charts(websocket, conn_state)

            elif action == "update":
                if not conn_state["contexts"]:
                    await websocket.send_json({"error": "Nothing to update, load charts first"})
                    continue

                time_to = data.get("time_to", conn_state["time_to"])
                # Keep the width of the charted window unless the client moves its start
                time_from = data.get("time_from", conn_state["time_from"] + time_to - conn_state["time_to"])

                with get_db() as conn:
                    results = [
                        charts.query_update(conn, conn_state["contexts"][metric], time_to, time_from)
                        for metric in conn_state["metrics"]
                    ]

                conn_state["time_from"] = time_from
                conn_state["time_to"] = time_to
                conn_state["last_fetch_time"] = time.time()
                await send_charts(websocket, conn_state, results)

            elif action == "set_accuracy":
                accuracy = resolve_accuracy(data.get("symbol"))

                if accuracy is None:
                    await websocket.send_json({
                        "error": f"Invalid accuracy. Valid options are: {', '.join(ACCURACIES.keys())}"
                    })
                    continue

                conn_state["accuracy"] = accuracy
                await reload_charts(websocket, conn_state)

            elif action == "move_up_accuracy" or action == "move_down_accuracy":
                current = conn_state["accuracy"]
                accuracy = current.up if action == "move_up_accuracy" else current.down

                if accuracy is None:
                    await websocket.send_json({
                        "error": "Already at coarsest accuracy" if action == "move_up_accuracy" else "Already at finest accuracy"
                    })
                    continue

                conn_state["accuracy"] = accuracy
                await reload_charts(websocket, conn_state)

            elif action == "dagre":
                time_from = data.get("time_from", conn_state["time_from"])
                time_to = data.get("time_to", conn_state["time_to"])

                with get_db() as conn:
                    links = fetch_links(conn, time_from, time_to)
                    liveness = fetch_liveness(conn, time_from, time_to)

                await websocket.send_json({"dagre": marshal(links, liveness)})

            else:
                await websocket.send_json({"error": f"Unknown action: {action}"})

    except WebSocketDisconnect:
        logger.info("WebSocket disconnected: %s", conn_id)
    finally:
        # Clean up connection state
        active_connections.pop(conn_id, None)
