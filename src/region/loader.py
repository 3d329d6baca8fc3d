"""
Region Loader

Loads a named region from a packaged boundary dataset, typically the Census
cartographic boundary shapefiles distributed as zip archives:

    https://www2.census.gov/geo/tiger/GENZ2020/shp/cb_2020_us_cbsa_500k.zip

Archives are downloaded and extracted into a temporary directory that is
removed once the layer has been read into memory.
"""

import logging
import tempfile
import zipfile
from pathlib import Path
from typing import List, Optional, Union

import geopandas as gpd
import requests
from shapely.ops import unary_union

from common.errors import DataFormatError, NotFoundError, RemoteServiceError
from common.http import DEFAULT_TIMEOUT, create_session

from .schemas import Region

logger = logging.getLogger(__name__)

CBSA_BOUNDARY_URL = "https://www2.census.gov/geo/tiger/GENZ2020/shp/cb_2020_us_cbsa_500k.zip"
GEOGRAPHIC_CRS = "EPSG:4326"
LAYER_SUFFIXES = ('.shp', '.geojson', '.json', '.gpkg')

PathOrUrl = Union[str, Path]


def _is_url(source: PathOrUrl) -> bool:
    return isinstance(source, str) and source.startswith(('http://', 'https://'))


def _download(
    url: str,
    destination: Path,
    session: Optional[requests.Session] = None,
    timeout: int = DEFAULT_TIMEOUT
) -> Path:
    """Stream a remote archive to disk."""
    session = session or create_session()
    logger.info(f"Downloading boundary archive: {url}")

    try:
        response = session.get(url, stream=True, timeout=timeout)
        response.raise_for_status()
        with open(destination, 'wb') as f:
            for chunk in response.iter_content(chunk_size=1024 * 1024):
                f.write(chunk)
    except requests.exceptions.HTTPError as e:
        raise RemoteServiceError("boundary download", str(e), e.response.status_code) from e
    except requests.exceptions.RequestException as e:
        raise RemoteServiceError("boundary download", str(e)) from e

    logger.debug(f"Saved {destination.stat().st_size:,} bytes to {destination}")
    return destination


def _read_layer(path: Path, work_dir: Path) -> gpd.GeoDataFrame:
    """Read a vector layer, extracting zip archives into work_dir first."""
    if path.suffix.lower() == '.zip':
        try:
            with zipfile.ZipFile(path, 'r') as zip_ref:
                zip_ref.extractall(work_dir)
        except zipfile.BadZipFile as e:
            raise DataFormatError(f"Not a valid zip archive: {path}") from e

        layers = sorted(
            p for p in work_dir.rglob('*')
            if p.suffix.lower() in LAYER_SUFFIXES
        )
        if not layers:
            raise DataFormatError(f"No readable boundary layer in archive {path.name}")
        path = layers[0]

    if path.suffix.lower() not in LAYER_SUFFIXES:
        raise DataFormatError(f"Unsupported boundary file type: {path.suffix}")

    logger.debug(f"Reading boundary layer {path.name}")
    gdf = gpd.read_file(path)

    if gdf.crs is None:
        gdf = gdf.set_crs(GEOGRAPHIC_CRS)
    elif gdf.crs.to_epsg() != 4326:
        gdf = gdf.to_crs(GEOGRAPHIC_CRS)

    return gdf


def read_boundaries(
    source: PathOrUrl = CBSA_BOUNDARY_URL,
    session: Optional[requests.Session] = None
) -> gpd.GeoDataFrame:
    """
    Read a boundary dataset from a URL or local path.

    Args:
        source: URL of a zipped shapefile, or a local .zip/.shp/.geojson path
        session: Optional requests session (for testing or connection reuse)

    Returns:
        GeoDataFrame in EPSG:4326

    Raises:
        RemoteServiceError: Download failed
        DataFormatError: No readable layer found
    """
    with tempfile.TemporaryDirectory(prefix='region_') as temp_dir:
        work_dir = Path(temp_dir)

        if _is_url(source):
            archive_name = Path(str(source).split('?')[0]).name or 'boundaries.zip'
            path = _download(str(source), work_dir / archive_name, session=session)
            extract_dir = work_dir / 'extracted'
            extract_dir.mkdir()
        else:
            path = Path(source)
            if not path.exists():
                raise NotFoundError(f"Boundary file not found: {path}")
            extract_dir = work_dir

        gdf = _read_layer(path, extract_dir)

    logger.info(f"Loaded {len(gdf)} boundary features")
    return gdf


def list_regions(
    source: PathOrUrl = CBSA_BOUNDARY_URL,
    name_field: str = "NAME",
    session: Optional[requests.Session] = None
) -> List[str]:
    """Return the sorted region names available in a boundary dataset."""
    gdf = read_boundaries(source, session=session)
    if name_field not in gdf.columns:
        raise DataFormatError(
            f"Name field '{name_field}' not in boundary attributes: {list(gdf.columns)}"
        )
    return sorted(gdf[name_field].dropna().astype(str).unique())


def select_region(
    gdf: gpd.GeoDataFrame,
    name: str,
    name_field: str = "NAME"
) -> Region:
    """
    Pick one named region out of a boundary GeoDataFrame.

    Several rows with the same name are dissolved into one geometry.

    Raises:
        NotFoundError: No row matches name
        DataFormatError: name_field is not an attribute of the layer
    """
    if name_field not in gdf.columns:
        raise DataFormatError(
            f"Name field '{name_field}' not in boundary attributes: {list(gdf.columns)}"
        )

    matches = gdf[gdf[name_field] == name]

    if matches.empty:
        needle = name.split(',')[0].split('-')[0].strip().lower()
        names = gdf[name_field].dropna().astype(str)
        suggestions = sorted(n for n in names.unique() if needle and needle in n.lower())[:5]
        hint = f" Did you mean: {suggestions}?" if suggestions else ""
        raise NotFoundError(f"No region named '{name}' in field '{name_field}'.{hint}")

    if len(matches) > 1:
        logger.warning(f"{len(matches)} features named '{name}', dissolving into one region")

    geometry = unary_union(list(matches.geometry))
    identifier = None
    if 'GEOID' in matches.columns:
        identifier = str(matches['GEOID'].iloc[0])

    return Region(name=name, geometry=geometry, identifier=identifier)


def load_region(
    source: PathOrUrl,
    name: str,
    name_field: str = "NAME",
    session: Optional[requests.Session] = None
) -> Region:
    """
    Load one named region from a boundary dataset.

    Args:
        source: URL or local path of the boundary dataset
        name: Region name to select (exact match on name_field)
        name_field: Attribute holding region names
        session: Optional requests session

    Returns:
        Region

    Raises:
        NotFoundError: No region with that name
        RemoteServiceError: Download failed
        DataFormatError: Dataset unreadable

    Example:
        >>> region = load_region(CBSA_BOUNDARY_URL, "Sacramento-Roseville-Folsom, CA")
        >>> region.bounds
        (-123.07..., 38.01..., -119.87..., 39.31...)
    """
    gdf = read_boundaries(source, session=session)
    region = select_region(gdf, name, name_field=name_field)
    logger.info(f"Region '{region.name}' loaded, bounds={tuple(round(b, 3) for b in region.bounds)}")
    return region
