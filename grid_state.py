import asyncio
from dataclasses import dataclass, replace
from typing import Any, BinaryIO, Callable, List, Optional, Tuple

from image_utils import load_image_reference

DEFAULT_ROWS = 3
DEFAULT_COLUMNS = 4

SAMPLE_IMAGES = (
    'https://images.unsplash.com/photo-1547721064-da6cfb341d50?w=800&q=60',
    'https://images.unsplash.com/photo-1524504388940-b1c1722653e1?w=800&q=60',
    'https://images.unsplash.com/photo-1503023345310-bd7c1de61c7d?w=800&q=60',
    'https://images.unsplash.com/photo-1491553895911-0055eca6402d?w=800&q=60',
    'https://images.unsplash.com/photo-1472214103451-9374bd1c798e?w=800&q=60',
)

# What to do with an upload that finishes after the picker moved on.
INGEST_POLICY_APPLY = 'apply'    # always assign to the cell targeted at upload time
INGEST_POLICY_TARGET = 'target'  # only if that cell is still the open target
INGEST_POLICIES = (INGEST_POLICY_APPLY, INGEST_POLICY_TARGET)


# --- Data Model ---

@dataclass(frozen=True)
class Cell:
    id: int
    image: Optional[str] = None  # data URL or remote URL


@dataclass(frozen=True)
class Grid:
    rows: int
    columns: int
    cells: Tuple[Cell, ...]

    def __len__(self) -> int:
        return len(self.cells)

    def __getitem__(self, index: int) -> Cell:
        return self.cells[index]


@dataclass(frozen=True)
class Session:
    """Which cell, if any, the picker dialog is editing."""
    is_open: bool = False
    target_index: Optional[int] = None


@dataclass(frozen=True)
class PendingIngest:
    token: int
    target_index: int


@dataclass(frozen=True)
class AppState:
    grid: Grid
    session: Session = Session()
    catalog: Tuple[str, ...] = SAMPLE_IMAGES
    pending: Optional[PendingIngest] = None
    ingest_seq: int = 0


# --- Grid ---

def initialize_grid(rows: int = DEFAULT_ROWS, columns: int = DEFAULT_COLUMNS) -> Grid:
    """Builds a rows x columns grid of empty cells, ids 1.. in row-major order."""
    if rows < 1 or columns < 1:
        raise ValueError(f'Grid needs at least one row and column, got {rows}x{columns}')
    cells = []
    cell_id = 1
    for _ in range(rows):
        for _ in range(columns):
            cells.append(Cell(id=cell_id))
            cell_id += 1
    return Grid(rows=rows, columns=columns, cells=tuple(cells))


def _check_index(grid: Grid, index: int) -> None:
    if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(grid):
        raise IndexError(f'Cell index {index!r} out of range for {len(grid)} cells')


def set_image(grid: Grid, index: int, image: Optional[str]) -> Grid:
    """Returns a new grid where only the cell at `index` has `image` (None clears it)."""
    _check_index(grid, index)
    cells = list(grid.cells)
    cells[index] = replace(cells[index], image=image)
    return replace(grid, cells=tuple(cells))


def clear_image(grid: Grid, index: int) -> Grid:
    return set_image(grid, index, None)


def swap_images(grid: Grid, index_a: int, index_b: int) -> Grid:
    """
    Exchanges the images of two cells. Cell ids stay where they are.
    Swapping a cell with itself returns the grid unchanged.
    """
    _check_index(grid, index_a)
    _check_index(grid, index_b)
    if index_a == index_b:
        return grid

    cells = list(grid.cells)
    image_a = cells[index_a].image
    cells[index_a] = replace(cells[index_a], image=cells[index_b].image)
    cells[index_b] = replace(cells[index_b], image=image_a)
    return replace(grid, cells=tuple(cells))


# --- Picker Session ---

def open_for(index: int) -> Session:
    return Session(is_open=True, target_index=index)


def close() -> Session:
    return Session()


# --- Catalog ---

def initial_catalog() -> Tuple[str, ...]:
    return SAMPLE_IMAGES


def add_image(catalog: Tuple[str, ...], image: str) -> Tuple[str, ...]:
    """Prepends `image`. No dedupe, nothing is ever removed."""
    return (image,) + tuple(catalog)


# --- Drag & Drop ---

def encode_drag_payload(index: int) -> str:
    return str(index)


def decode_drag_payload(payload: Any, cell_count: int) -> Optional[int]:
    """
    Turns the text/plain drag data back into a source cell index.

    The browser may hand us the string itself or a one-element list of it.
    Returns None for anything that is not a base-10 integer inside the grid,
    e.g. text dragged in from another window.
    """
    if isinstance(payload, (list, tuple)):
        if len(payload) != 1:
            return None
        payload = payload[0]
    if not isinstance(payload, str):
        return None
    try:
        index = int(payload.strip())
    except ValueError:
        return None
    if not 0 <= index < cell_count:
        return None
    return index


# --- Commands ---

@dataclass(frozen=True)
class OpenModal:
    index: int


@dataclass(frozen=True)
class CloseModal:
    pass


@dataclass(frozen=True)
class PickImage:
    image: str


@dataclass(frozen=True)
class ClearCell:
    index: int


@dataclass(frozen=True)
class Swap:
    source: int
    target: int


@dataclass(frozen=True)
class StartIngest:
    pass


@dataclass(frozen=True)
class FinishIngest:
    token: int
    target_index: int
    image: str


@dataclass(frozen=True)
class FailIngest:
    token: int


def _finish_ingest(state: AppState, command: FinishIngest, policy: str) -> AppState:
    pending = state.pending
    is_current = pending is not None and pending.token == command.token

    if policy == INGEST_POLICY_TARGET:
        if not is_current:
            return state
        session = state.session
        if not session.is_open or session.target_index != command.target_index:
            return replace(state, pending=None)

    return replace(
        state,
        grid=set_image(state.grid, command.target_index, command.image),
        catalog=add_image(state.catalog, command.image),
        session=close(),
        pending=None if is_current else pending,
    )


def reduce(state: AppState, command: Any, policy: str = INGEST_POLICY_TARGET) -> AppState:
    """Applies one user command and returns the next state."""
    if policy not in INGEST_POLICIES:
        raise ValueError(f'Unknown ingest policy: {policy!r}')

    if isinstance(command, OpenModal):
        _check_index(state.grid, command.index)
        return replace(state, session=open_for(command.index))

    if isinstance(command, CloseModal):
        return replace(state, session=close(), pending=None)

    if isinstance(command, PickImage):
        if not state.session.is_open:
            return state
        grid = set_image(state.grid, state.session.target_index, command.image)
        return replace(state, grid=grid, session=close(), pending=None)

    if isinstance(command, ClearCell):
        return replace(state, grid=clear_image(state.grid, command.index))

    if isinstance(command, Swap):
        return replace(state, grid=swap_images(state.grid, command.source, command.target))

    if isinstance(command, StartIngest):
        if not state.session.is_open:
            return state
        token = state.ingest_seq + 1
        return replace(
            state,
            pending=PendingIngest(token=token, target_index=state.session.target_index),
            ingest_seq=token,
        )

    if isinstance(command, FinishIngest):
        return _finish_ingest(state, command, policy)

    if isinstance(command, FailIngest):
        if state.pending is not None and state.pending.token == command.token:
            return replace(state, pending=None)
        return state

    raise TypeError(f'Unknown command: {command!r}')


# --- Store ---

class GridStore:
    """Owns the AppState and runs every transition through `reduce`."""

    def __init__(self, rows: int = DEFAULT_ROWS, columns: int = DEFAULT_COLUMNS,
                 policy: str = INGEST_POLICY_TARGET):
        if policy not in INGEST_POLICIES:
            raise ValueError(f'Unknown ingest policy: {policy!r}')
        self.policy = policy
        self.state = AppState(grid=initialize_grid(rows, columns), catalog=initial_catalog())
        self._listeners: List[Callable[[AppState], None]] = []

    def subscribe(self, listener: Callable[[AppState], None]) -> None:
        self._listeners.append(listener)

    def dispatch(self, command: Any) -> AppState:
        new_state = reduce(self.state, command, self.policy)
        if new_state is not self.state:
            self.state = new_state
            for listener in self._listeners:
                listener(new_state)
        return self.state

    def drop(self, payload: Any, target_index: int) -> bool:
        """Handles a drop on `target_index`. Returns False when the payload is unusable."""
        source_index = decode_drag_payload(payload, len(self.state.grid))
        if source_index is None:
            return False
        self.dispatch(Swap(source=source_index, target=target_index))
        return True

    async def ingest(self, stream: Optional[BinaryIO], name: Optional[str] = None,
                     content_type: Optional[str] = None) -> Optional[str]:
        """
        Reads an uploaded file into a data URL and hands it to the open picker.

        The read runs in a worker thread so the page stays responsive. Returns
        the encoded image reference, or None when nothing was read (no file,
        no open picker, unreadable file). Under the "target" policy a stale
        upload is still returned but not applied.
        """
        if stream is None or not self.state.session.is_open:
            return None

        self.dispatch(StartIngest())
        pending = self.state.pending
        token, target_index = pending.token, pending.target_index

        loop = asyncio.get_running_loop()
        try:
            image = await loop.run_in_executor(None, lambda: load_image_reference(stream, name, content_type))
        except Exception as e:
            print(f"Error ingesting upload {name}: {e}")
            image = None

        if image is None:
            self.dispatch(FailIngest(token))
            return None
        self.dispatch(FinishIngest(token=token, target_index=target_index, image=image))
        return image
