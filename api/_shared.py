import json
import math
import os
import re
import threading
import time
import logging
import unicodedata
from dataclasses import dataclass, fields, replace
from urllib.parse import urlencode

import pandas as pd
import requests

logger = logging.getLogger("api")
logger.setLevel(logging.INFO)

# Configuration for Google Sheet source
SPREADSHEET_ID = os.environ.get('SPREADSHEET_ID', '1xycsCObrwx_m2nvwLpFMA6g5KhldWPUTJ4FrCdIKoBA').strip()
SHEET_NAME = os.environ.get('SHEET_NAME', 'Hoja 1')
DATA_RANGE = os.environ.get('DATA_RANGE', 'A5:S').strip()
META_RANGE = os.environ.get('META_RANGE', 'A1:A1').strip()
FETCH_TIMEOUT_S = float(os.environ.get('FETCH_TIMEOUT_S', '20'))


def _positive_int_env(name: str, default: int) -> int:
    value = int(os.environ.get(name, str(default)))
    if value < 1:
        raise ValueError(f"{name} must be at least 1, got {value}")
    return value


PAGE_SIZE = _positive_int_env('PAGE_SIZE', 50)

CONNECTION_ERROR = 'Error de conexión'

# Sheet header -> record field
COLUMN_FIELDS = {
    'Ubicación de picking': 'location',
    'Cambiar pick': 'change_pick',
    'Filtrar': 'filter_flag',
    'Colocar': 'place',
    'Artículo': 'article_id',
    'Descripción': 'description',
    'P.p. caj.': 'pp_cases',
    'P.p. ud.': 'pp_units',
    'Disp. caj.': 'available_cases',
    'Disp. ud.': 'available_units',
    'Stock Atarfe': 'warehouse_stock',
    'Un/Caja': 'units_per_case',
    'Un/Pallet': 'units_per_pallet',
    'Peso caj.': 'case_weight',
    'Dias Vida Util Almacen': 'shelf_life_days',
    'Aecoc': 'aecoc_code',
    'Tipo': 'type',
    'Estado del producto': 'product_status',
    'Codigo de Promocion': 'promotion_code',
}

# (normalized phrase, label); first match wins
STATUS_LABELS = [
    ('articulo en alta comercial', 'ALTA COMERC.'),
    ('detenido comercialmente', 'DETENIDO'),
    ('proceso de baja', 'BAJA'),
    ('obsoleto', 'OBSOLETO'),
]

# Badge colour tiers, checked in this order; anything else is neutral
STATUS_SEVERITIES = [
    ('detenido comercialmente', 'warning'),
    ('proceso de baja', 'critical'),
    ('obsoleto', 'critical'),
]

SIDES = ['D', 'I']


class FetchError(RuntimeError):
    """Raised when the inventory range cannot be fetched or parsed.

    The message is always the generic connectivity text; the real cause is
    chained as ``__cause__`` and logged.
    """

    def __init__(self, message: str = CONNECTION_ERROR):
        super().__init__(message)


def json_response(data: dict, status: int = 200, extra_headers: dict | None = None):
    body = json.dumps(data, ensure_ascii=False)
    headers = {
        "Content-Type": "application/json; charset=utf-8",
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type,Authorization",
        "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    }
    if extra_headers:
        headers.update(extra_headers)
    return (body, status, headers)


def normalize_text(value):
    """Lowercase and strip accents so 'Café' and 'CAFE' compare equal."""
    if value is None or value == '':
        return ''
    decomposed = unicodedata.normalize('NFD', str(value).lower())
    return ''.join(ch for ch in decomposed if not unicodedata.combining(ch))


def abbreviate_status(status) -> str:
    if not status:
        return 'NORMAL'
    s = normalize_text(status)
    for phrase, label in STATUS_LABELS:
        if phrase in s:
            return label
    return str(status).upper()


def status_severity(status) -> str:
    s = normalize_text(status)
    for phrase, severity in STATUS_SEVERITIES:
        if phrase in s:
            return severity
    return 'neutral'


def format_last_updated(value) -> str:
    """
    Render the sheet's "last updated" cell as dd/mm/yy.
    Accepts gviz date literals ('Date(2025,2,12,9,30,0)', month is 0-based)
    and formatted text ('12/03/2025 09:30:00'). Falls back to the raw text.
    """
    if value is None or value == '':
        return ''
    txt = str(value).strip()
    m = re.match(r'^Date\((\d+),(\d+),(\d+)', txt)
    if m:
        year, month, day = int(m.group(1)), int(m.group(2)) + 1, int(m.group(3))
        return f"{day:02d}/{month:02d}/{str(year)[-2:]}"
    ts = pd.to_datetime(txt, dayfirst=True, errors='coerce')
    if pd.isna(ts):
        return txt
    return ts.strftime('%d/%m/%y')


def build_gviz_url(cell_range: str, headers: int) -> str:
    query = urlencode({
        'tqx': 'out:json',
        'sheet': SHEET_NAME,
        'range': cell_range,
        'headers': headers,
        '_cb': int(time.time()),
    })
    return f"https://docs.google.com/spreadsheets/d/{SPREADSHEET_ID}/gviz/tq?{query}"


def extract_payload(text: str) -> dict:
    """Pull the JSON object out of the gviz 'google.visualization...setResponse(...)' wrapper."""
    txt = text or ''
    start = txt.find('{')
    end = txt.rfind('}')
    if start < 0 or end < start:
        raise ValueError('gviz wrapper not found')
    return json.loads(txt[start:end + 1])


def _get_gviz(cell_range: str, headers: int) -> dict:
    url = build_gviz_url(cell_range, headers)
    resp = requests.get(url, timeout=FETCH_TIMEOUT_S, headers={
        'Cache-Control': 'no-cache',
        'Pragma': 'no-cache',
    })
    logger.info("[Sheet] range %s status %s", cell_range, getattr(resp, 'status_code', 'n/a'))
    resp.raise_for_status()
    decoded = resp.content.decode('utf-8', errors='replace')
    return extract_payload(decoded)


def _fetch_last_updated() -> str:
    try:
        payload = _get_gviz(META_RANGE, 0)
        rows = payload['table']['rows']
        if not rows:
            return ''
        cell = (rows[0].get('c') or [None])[0]
        if not cell:
            return ''
        raw = cell.get('f') if cell.get('f') is not None else cell.get('v')
        return format_last_updated(raw)
    except (requests.RequestException, ValueError, KeyError, TypeError, AttributeError, IndexError) as e:
        logger.warning("[Sheet] last-updated cell unavailable: %s", e)
        return ''


def column_labels(cols) -> list[str]:
    labels = []
    for idx, col in enumerate(cols or []):
        label = str(col.get('label') or '').strip() if isinstance(col, dict) else ''
        labels.append(label or f"Columna {idx + 1}")
    return labels


def fetch_table() -> dict:
    """
    Fetch the last-updated cell and the inventory range.
    Returns {'columns': [...], 'rows': [...], 'last_updated': str}.
    Raises FetchError for anything wrong with the inventory range.
    """
    last_updated = _fetch_last_updated()
    try:
        payload = _get_gviz(DATA_RANGE, 1)
    except (requests.RequestException, ValueError) as e:
        logger.error("[Sheet] inventory fetch failed: %s", e)
        raise FetchError() from e
    table = payload.get('table') if isinstance(payload, dict) else None
    if not isinstance(table, dict) or not isinstance(table.get('rows'), list):
        logger.error("[Sheet] inventory payload has no rows (status=%s)",
                     payload.get('status') if isinstance(payload, dict) else None)
        raise FetchError()
    columns = column_labels(table.get('cols'))
    logger.info("[Sheet] columns=%d rows=%d", len(columns), len(table['rows']))
    return {'columns': columns, 'rows': table['rows'], 'last_updated': last_updated}


def _cell_value(cell):
    if not isinstance(cell, dict):
        return ''
    if cell.get('f') is not None:
        return cell['f']
    v = cell.get('v')
    if v is None:
        return ''
    if isinstance(v, float) and v.is_integer():
        return int(v)
    return v


def map_records(columns, rows) -> list[dict]:
    records = []
    for row in rows or []:
        cells = row.get('c') if isinstance(row, dict) else None
        if not isinstance(cells, list):
            cells = []
        item = {}
        for idx, cell in enumerate(cells):
            label = columns[idx] if idx < len(columns) else f"Columna {idx + 1}"
            item[COLUMN_FIELDS.get(label, label)] = _cell_value(cell)
        records.append(item)
    return records


def _is_blank(value) -> bool:
    return value is None or value == ''


def location_sort_key(value):
    """
    Natural collation key for picking locations: digit runs compare by
    magnitude ("A2" < "A10"); punctuation < digits < letters; letters compare
    ignoring accents and case first, then accents, then case (lowercase first).
    """
    txt = '' if value is None else str(value)
    primary = []
    for m in re.finditer(r'\d+|\D', txt):
        tok = m.group(0)
        if tok.isdigit():
            primary.append((1, int(tok), ''))
        elif tok.isalpha():
            primary.append((2, 0, normalize_text(tok)))
        else:
            primary.append((0, 0, tok))
    secondary = unicodedata.normalize('NFD', txt.lower())
    tertiary = tuple(ch.isupper() for ch in txt)
    return (tuple(primary), secondary, tertiary)


def clean_and_sort(records) -> list[dict]:
    kept = [r for r in records if not _is_blank(r.get('article_id')) or not _is_blank(r.get('description'))]
    return sorted(kept, key=lambda r: location_sort_key(r.get('location')))


def _text(value) -> str:
    return '' if value is None else str(value)


def _location(record) -> str:
    return _text(record.get('location'))


def location_aisle(location) -> str:
    return _text(location)[:3]


def location_side(location) -> str:
    loc = _text(location)
    if 'D' in loc:
        return 'D'
    if 'I' in loc:
        return 'I'
    return ''


@dataclass
class FilterCriteria:
    search: str = ''
    status: str = ''
    type: str = ''
    aisle: str = ''
    side: str = ''

    @classmethod
    def from_params(cls, params) -> 'FilterCriteria':
        # categorical values must round-trip exactly as derive_filter_options offers them
        def get(key):
            return str(params.get(key) or '')
        return cls(
            search=(get('q') or get('search')).strip(),
            status=get('status'),
            type=get('type'),
            aisle=get('aisle'),
            side=get('side').strip().upper(),
        )

    def is_empty(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self))


def derive_filter_options(dataset) -> dict:
    statuses = set()
    types = set()
    aisles = set()
    for item in dataset:
        if item.get('product_status'):
            statuses.add(str(item['product_status']))
        if item.get('type'):
            types.add(str(item['type']))
        loc = _location(item)
        if len(loc) >= 3:
            aisles.add(loc[:3])
    return {
        'statuses': sorted(statuses),
        'types': sorted(types),
        'aisles': sorted(aisles),
        'sides': list(SIDES),
    }


def apply_filters(dataset, criteria) -> list[dict]:
    if not isinstance(criteria, FilterCriteria):
        criteria = FilterCriteria.from_params(criteria or {})
    tokens = [normalize_text(t) for t in criteria.search.split()]

    def matches(item):
        if tokens:
            art = normalize_text(item.get('article_id'))
            desc = normalize_text(item.get('description'))
            if not all(t in art or t in desc for t in tokens):
                return False
        if criteria.status and _text(item.get('product_status')) != criteria.status:
            return False
        if criteria.type and _text(item.get('type')) != criteria.type:
            return False
        loc = _location(item)
        if criteria.aisle and loc[:3] != criteria.aisle:
            return False
        if criteria.side and location_side(loc) != criteria.side:
            return False
        return True

    return [item for item in dataset if matches(item)]


def page_count(records, page_size: int = PAGE_SIZE) -> int:
    if not records:
        return 0
    return math.ceil(len(records) / page_size)


def paginate(records, page_size: int = PAGE_SIZE, page_number: int = 1) -> list[dict]:
    if page_number < 1:
        return []
    start = (page_number - 1) * page_size
    return list(records[start:start + page_size])


def present_record(record: dict) -> dict:
    """Record as sent to the UI: status badge, aisle/side and unit defaults."""
    out = dict(record)
    loc = _location(record)
    out['location'] = loc
    out['aisle'] = location_aisle(loc)
    out['side'] = location_side(loc)
    out['units_per_case'] = record.get('units_per_case') or 0
    out['units_per_pallet'] = record.get('units_per_pallet') or 0
    out['status_label'] = abbreviate_status(record.get('product_status'))
    out['status_severity'] = status_severity(record.get('product_status'))
    return out


class InventorySession:
    """
    In-memory state for one consultation session.

    The dataset is replaced wholesale by load(); filter options and the
    filtered/paginated views are recomputed on every call.
    """

    def __init__(self, page_size: int = PAGE_SIZE, fetcher=None):
        if page_size < 1:
            raise ValueError(f"page_size must be at least 1, got {page_size}")
        self.page_size = page_size
        self.dataset: list[dict] = []
        self.criteria = FilterCriteria()
        self.page = 1
        self.last_updated = ''
        self.loading = False
        self.error: str | None = None
        self.has_loaded = False
        self._fetch = fetcher or fetch_table
        self._lock = threading.Lock()

    def load(self) -> bool:
        if not self._lock.acquire(blocking=False):
            logger.info("Load already in flight; ignoring refresh")
            return False
        self.loading = True
        self.error = None
        try:
            table = self._fetch()
            self.dataset = clean_and_sort(map_records(table['columns'], table['rows']))
            if table.get('last_updated'):
                self.last_updated = table['last_updated']
            self.has_loaded = True
            logger.info("Loaded %d records (last updated %s)", len(self.dataset), self.last_updated or 'n/a')
        except FetchError as e:
            self.error = str(e)
        finally:
            self.loading = False
            self._lock.release()
        return True

    def ensure_loaded(self) -> None:
        if not self.has_loaded:
            self.load()

    def set_criteria(self, **changes) -> None:
        updated = replace(self.criteria, **changes)
        if updated != self.criteria:
            self.criteria = updated
            self.page = 1

    def clear_filters(self) -> None:
        self.set_criteria(search='', status='', type='', aisle='', side='')

    def filter_options(self) -> dict:
        return derive_filter_options(self.dataset)

    def filtered(self) -> list[dict]:
        return apply_filters(self.dataset, self.criteria)

    def page_count(self) -> int:
        return page_count(self.filtered(), self.page_size)

    def set_page(self, page_number: int) -> None:
        self.page = min(max(1, page_number), max(self.page_count(), 1))

    def current_page(self) -> list[dict]:
        return paginate(self.filtered(), self.page_size, self.page)


def _page_param(params) -> int:
    try:
        n = int(str(params.get('page') or '1').strip())
    except (TypeError, ValueError):
        return 1
    return n if n >= 1 else 1


def build_meta(session: InventorySession) -> dict:
    session.ensure_loaded()
    meta = session.filter_options()
    meta.update({
        'lastUpdated': session.last_updated,
        'count': len(session.dataset),
        'error': session.error,
    })
    return meta


def build_search(session: InventorySession, params) -> dict:
    session.ensure_loaded()
    criteria = FilterCriteria.from_params(params)
    page = _page_param(params)
    filtered = apply_filters(session.dataset, criteria)
    results = [present_record(r) for r in paginate(filtered, session.page_size, page)]
    logger.info("[search] criteria=%s total=%d page=%d", criteria, len(filtered), page)
    return {
        'results': results,
        'page': page,
        'pageSize': session.page_size,
        'pageCount': page_count(filtered, session.page_size),
        'total': len(filtered),
        'lastUpdated': session.last_updated,
        'error': session.error,
    }


def build_refresh(session: InventorySession) -> dict:
    ran = session.load()
    return {
        'ok': ran and session.error is None,
        'busy': not ran,
        'count': len(session.dataset),
        'lastUpdated': session.last_updated,
        'error': session.error,
    }


# Shared by the Vercel handlers and the Flask app within one process
SESSION = InventorySession()
