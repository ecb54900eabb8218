from nicegui import events, ui

from grid_state import (
    DEFAULT_COLUMNS,
    DEFAULT_ROWS,
    INGEST_POLICY_TARGET,
    ClearCell,
    CloseModal,
    GridStore,
    OpenModal,
    PickImage,
    encode_drag_payload,
)

# Uploads that finish after the picker was closed or moved to another cell
# are dropped. Switch to INGEST_POLICY_APPLY to always assign them.
INGEST_POLICY = INGEST_POLICY_TARGET

WINDOW_TITLE = 'Grid Image Picker'
WINDOW_SIZE = (1000, 800)
NATIVE = True

store = GridStore(rows=DEFAULT_ROWS, columns=DEFAULT_COLUMNS, policy=INGEST_POLICY)

# --- Handlers ---

def open_picker(index: int):
    store.dispatch(OpenModal(index))


def close_picker():
    store.dispatch(CloseModal())


def pick_image(src: str):
    store.dispatch(PickImage(src))


def clear_cell(index: int):
    ui.notify(f'Cell #{index + 1} cleared')
    store.dispatch(ClearCell(index))


def on_drop(e: events.GenericEventArguments, target_index: int):
    # Payload is whatever the browser had under text/plain; junk is ignored
    store.drop(e.args, target_index)


async def handle_upload(e: events.UploadEventArguments):
    image = await store.ingest(e.content, e.name, e.type)
    if image is None:
        # the upload widget is gone after the refresh, notify through the page
        with e.client:
            ui.notify(f'Could not read {e.name}', type='warning')


def sync_view(state):
    """Pushes a new state into the page."""
    refresh_grid_ui.refresh()
    refresh_picker_ui.refresh()
    if state.session.is_open:
        picker_dialog.open()
    else:
        picker_dialog.close()


def on_picker_hidden():
    # Backdrop click or Escape; the dialog is already hidden client side
    if store.state.session.is_open and not picker_dialog.value:
        close_picker()

# --- UI Components ---

@ui.refreshable
def refresh_grid_ui():
    """Renders the grid of cells."""
    grid = store.state.grid

    with ui.grid(columns=grid.columns).classes('w-full gap-4'):
        for i, cell in enumerate(grid.cells):
            with ui.card().classes('w-full h-40 p-1 relative border-2 cursor-pointer') as drop_card:
                drop_card.style('border-color: #e5e7eb')
                drop_card.classes('hover:bg-blue-50 transition-colors')
                drop_card.on('click', lambda e, i=i: open_picker(i))

                if cell.image:
                    img_el = ui.image(cell.image).classes('w-full h-full object-cover rounded cursor-move')
                    img_el.props(f'draggable alt="cell-{i}"')
                    payload = encode_drag_payload(i)
                    img_el.on('dragstart', js_handler=f"(e) => e.dataTransfer.setData('text/plain', '{payload}')")

                    clear_btn = ui.button(icon='close').classes('absolute top-1 right-1')
                    clear_btn.props('round dense size=sm color=grey-8 title="Clear"')
                    clear_btn.on('click.stop', lambda e, i=i: clear_cell(i))
                else:
                    with ui.column().classes('w-full h-full justify-center items-center'):
                        ui.icon('add_photo_alternate', size='2em', color='grey-400')

                # ondragover must prevent default client side or the drop never fires
                drop_card.props('ondragover="event.preventDefault()"')
                drop_card.on(
                    'drop',
                    lambda e, i=i: on_drop(e, i),
                    js_handler="(e) => { e.preventDefault(); emit(e.dataTransfer.getData('text/plain')); }",
                )


@ui.refreshable
def refresh_picker_ui():
    """Renders the picker contents for the targeted cell."""
    session = store.state.session
    if not session.is_open:
        return

    ui.label(f'Choose an image for cell #{session.target_index + 1}').classes('text-lg font-bold')

    with ui.grid(columns=4).classes('w-full gap-2'):
        for idx, src in enumerate(store.state.catalog):
            with ui.button(on_click=lambda s=src: pick_image(s)).props('flat padding=none'):
                ui.image(src).classes('w-28 h-20 object-cover rounded').props(f'alt="thumb-{idx}"')

    ui.upload(label='Upload your own image', on_upload=handle_upload, auto_upload=True) \
        .props('accept=image/*').classes('w-full')

    with ui.row().classes('w-full justify-end'):
        ui.button('Cancel', on_click=close_picker).props('flat')

# --- Main Layout ---

with ui.dialog() as picker_dialog, ui.card().classes('w-full max-w-3xl'):
    refresh_picker_ui()
picker_dialog.on('hide', on_picker_hidden)

with ui.column().classes('w-full p-4'):
    with ui.row().classes('w-full bg-blue-100 p-4 items-center gap-4'):
        ui.label(WINDOW_TITLE).classes('text-xl font-bold text-blue-900')
        ui.label('Click a cell to choose an image. Drag images to swap cells.').classes('text-gray-600')

    refresh_grid_ui()

    ui.label('Made with ❤️').classes('w-full text-center text-xs text-gray-400')

store.subscribe(sync_view)

# Start the App
if __name__ in {"__main__", "__mp_main__"}:
    ui.run(title=WINDOW_TITLE, native=NATIVE, window_size=WINDOW_SIZE)
