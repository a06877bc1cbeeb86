"""FamilyGraph - genealogy chart data backend.

FastAPI server that loads family graphs from WikiTree, GEDCOM uploads and
GEDCOM URLs and serves the chart data, detail entries and ages.
"""

import hashlib
import logging
from dataclasses import asdict

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("familygraph")

import httpx
from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel
from dotenv import load_dotenv

# Load environment variables before reading settings
load_dotenv()

from age_utils import calc_age, calc_age_for_individual
from gedcom_utils import export_gedcom_content, get_name
from sources import (
    GedcomUrlDataSource,
    IndiInfo,
    LRUTTLCache,
    SourceSelection,
    UploadedDataSource,
    UploadSourceSpec,
    UrlSourceSpec,
    WikiTreeClient,
    WikiTreeDataSource,
    WikiTreeSourceSpec,
    get_selection,
)
from tree_config import CORS_ORIGINS
from tree_errors import PROFILE_NOT_ACCESSIBLE, PROFILE_NOT_FOUND, TreeError, get_i18n_message
from tree_models import LoadedData

# Shared caches: WikiTree API responses and converted GEDCOM files.
response_cache = LRUTTLCache()
data_cache = LRUTTLCache()

wikitree_source = WikiTreeDataSource(WikiTreeClient(cache=response_cache))
uploaded_source = UploadedDataSource(cache=data_cache)
url_source = GedcomUrlDataSource(cache=data_cache)

# Global state
current_data: LoadedData | None = None
current_source: SourceSelection | None = None
current_source_kind: str | None = None


# Create FastAPI app
app = FastAPI(
    title="FamilyGraph",
    description="Family graph loader for genealogy charts (WikiTree and GEDCOM)",
    version="1.0.0",
)

# Configure CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Response models
class GraphResponse(BaseModel):
    """Loaded chart data with the selected individual."""
    source: str
    selection: dict
    chart_data: dict
    individual_count: int
    family_count: int


class AgeResponse(BaseModel):
    age: str | None


def _error_status(error: TreeError) -> int:
    if error.code == PROFILE_NOT_FOUND:
        return 404
    if error.code == PROFILE_NOT_ACCESSIBLE:
        return 403
    return 400


def _require_data() -> LoadedData:
    if current_data is None:
        logger.warning("Request made without any data loaded")
        raise HTTPException(status_code=400, detail="No family data loaded. Load WikiTree data or upload a GEDCOM file first.")
    return current_data


def _graph_response(kind: str, source: SourceSelection, data: LoadedData) -> GraphResponse:
    selection = get_selection(data.chart_data, source.selection)
    return GraphResponse(
        source=kind,
        selection=asdict(selection),
        chart_data=data.chart_data.to_json(),
        individual_count=len(data.chart_data.indis),
        family_count=len(data.chart_data.fams),
    )


async def _load(kind: str, data_source, source: SourceSelection) -> GraphResponse:
    """Loads data through the given data source unless the current data can be reused."""
    global current_data, current_source, current_source_kind

    if (
        current_data is not None
        and current_source_kind == kind
        and current_source is not None
        and not data_source.is_new_data(source, current_source, current_data)
    ):
        logger.info(f"Reusing loaded {kind} data")
        current_source = source
        return _graph_response(kind, source, current_data)

    try:
        data = await data_source.load_data(source)
    except TreeError as e:
        logger.warning(f"Failed to load {kind} data: {e.code}")
        raise HTTPException(status_code=_error_status(e), detail=get_i18n_message(e))
    except httpx.HTTPError as e:
        logger.error(f"Upstream request failed while loading {kind} data: {str(e)}")
        raise HTTPException(status_code=502, detail=f"Upstream request failed: {str(e)}")

    current_data = data
    current_source = source
    current_source_kind = kind
    logger.info(f"Loaded {kind} data with {len(data.chart_data.indis)} individuals")
    return _graph_response(kind, source, data)


# Endpoints

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    logger.debug("Health check requested")
    return {
        "status": "healthy",
        "data_loaded": current_data is not None,
        "source": current_source_kind,
    }


@app.get("/wikitree/{key}", response_model=GraphResponse)
async def load_wikitree_profile(key: str, authcode: str | None = None, generation: int = 0):
    """Load the hourglass graph around a WikiTree profile, e.g. Skłodowska-2."""
    logger.info(f"WikiTree load requested for '{key}'")
    source = SourceSelection(
        spec=WikiTreeSourceSpec(authcode=authcode),
        selection=IndiInfo(id=key, generation=generation),
    )
    return await _load("wikitree", wikitree_source, source)


@app.post("/upload-gedcom", response_model=GraphResponse)
async def upload_gedcom(file: UploadFile = File(...)):
    """Upload and convert a GEDCOM file."""
    logger.info(f"Received GEDCOM file upload: {file.filename}")

    if not file.filename or not file.filename.lower().endswith((".ged", ".gedcom")):
        logger.warning(f"Invalid file type: {file.filename}")
        raise HTTPException(status_code=400, detail="File must be a GEDCOM file (.ged or .gedcom)")

    content = await file.read()
    logger.debug(f"Read {len(content)} bytes from file")
    try:
        content_str = content.decode("utf-8")
    except UnicodeDecodeError:
        logger.info("UTF-8 decode failed, trying latin-1 encoding")
        content_str = content.decode("latin-1")

    source = SourceSelection(
        spec=UploadSourceSpec(hash=hashlib.sha256(content).hexdigest(), gedcom=content_str),
    )
    try:
        return await _load("upload", uploaded_source, source)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to parse GEDCOM file: {str(e)}")
        raise HTTPException(status_code=400, detail=f"Failed to parse GEDCOM file: {str(e)}")


@app.get("/gedcom-url", response_model=GraphResponse)
async def load_gedcom_url(url: str = Query(..., min_length=1)):
    """Fetch and convert a GEDCOM file published at a URL."""
    logger.info(f"GEDCOM URL load requested: {url}")
    source = SourceSelection(spec=UrlSourceSpec(url=url))
    try:
        return await _load("url", url_source, source)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to parse GEDCOM from {url}: {str(e)}")
        raise HTTPException(status_code=400, detail=f"Failed to parse GEDCOM file: {str(e)}")


@app.get("/graph")
async def get_graph():
    """Get the chart data of the currently loaded graph."""
    data = _require_data()
    return data.chart_data.to_json()


@app.get("/individuals")
async def get_individuals():
    """Get all individuals of the loaded graph with display names."""
    data = _require_data()
    individuals = []
    for indi in data.chart_data.indis:
        entry = data.gedcom.indis.get(indi.id)
        individuals.append({
            "id": indi.id,
            "name": get_name(entry) if entry else None,
            "sex": indi.sex,
        })
    logger.info(f"Returning {len(individuals)} individuals")
    return {"individuals": individuals}


@app.get("/details/{indi_id}")
async def get_details(indi_id: str):
    """Get the detail entry tree of an individual and their age at death."""
    data = _require_data()
    entry = data.gedcom.indis.get(indi_id)
    if entry is None:
        logger.warning(f"Individual {indi_id} not found")
        raise HTTPException(status_code=404, detail=f"Individual with ID {indi_id} not found")
    return {
        "id": indi_id,
        "entry": asdict(entry),
        "age": calc_age_for_individual(data.gedcom, indi_id),
    }


@app.get("/age", response_model=AgeResponse)
async def get_age(birth: str = Query(...), death: str = Query(...)):
    """Age at death for two GEDCOM dates, e.g. birth=ABT 1890&death=1921."""
    return AgeResponse(age=calc_age(birth, death))


@app.get("/export", response_class=PlainTextResponse)
async def export_gedcom():
    """Export the detail entry tree of the loaded graph as GEDCOM text."""
    data = _require_data()
    return export_gedcom_content(data.gedcom)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
