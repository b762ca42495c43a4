from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from PySide6.QtCore import QObject, QPoint, Qt, QTimer, Signal
from PySide6.QtGui import QAction, QCloseEvent, QKeySequence
from PySide6.QtWidgets import (
    QDockWidget,
    QFileDialog,
    QInputDialog,
    QLabel,
    QMainWindow,
    QMenu,
    QMessageBox,
    QPlainTextEdit,
    QStackedWidget,
    QTabWidget,
    QTreeWidget,
    QTreeWidgetItem,
)

from nodian.settings import LOG_FORMAT
from nodian.workspace import (
    MutationPipeline,
    NodeKind,
    OpenDocument,
    TreeNode,
    WorkspaceController,
    WorkspaceError,
    paths,
)

logger = logging.getLogger(__name__)


class _LogBridge(QObject):
    message = Signal(str)


class OutputPanelHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.bridge = _LogBridge()
        self.setFormatter(logging.Formatter(LOG_FORMAT))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.bridge.message.emit(self.format(record))
        except RuntimeError:
            self.handleError(record)


class MainWindow(QMainWindow):
    _PATH_ROLE = Qt.ItemDataRole.UserRole
    _STATUS_TIMEOUT_MS = 2500
    _MIN_WINDOW_WIDTH = 640
    _MIN_WINDOW_HEIGHT = 420

    def __init__(self, controller: WorkspaceController) -> None:
        super().__init__()
        self.controller = controller
        self.mutations = MutationPipeline(controller)
        self._editors: dict[OpenDocument, QPlainTextEdit] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self._syncing_views = False

        self.setWindowTitle("Nodian")
        self.setMinimumSize(self._MIN_WINDOW_WIDTH, self._MIN_WINDOW_HEIGHT)
        self.resize(1280, 820)

        self._build_menu_bar()
        self._build_status_bar()
        self._build_central_editor_area()
        self._build_explorer_dock()
        self._build_output_dock()
        self._refresh_views()

    def _build_menu_bar(self) -> None:
        file_menu = self.menuBar().addMenu("&File")
        view_menu = self.menuBar().addMenu("&View")

        self.open_folder_action = QAction("Open &Folder...", self)
        self.open_folder_action.setShortcut(QKeySequence("Ctrl+Shift+O"))
        self.open_folder_action.triggered.connect(self.open_folder_dialog)

        self.new_file_action = QAction("&New File...", self)
        self.new_file_action.setShortcut(QKeySequence.StandardKey.New)
        self.new_file_action.triggered.connect(lambda: self._create_entry(self._target_directory(), NodeKind.FILE))

        self.new_folder_action = QAction("New Fol&der...", self)
        self.new_folder_action.triggered.connect(
            lambda: self._create_entry(self._target_directory(), NodeKind.DIRECTORY)
        )

        self.save_action = QAction("&Save", self)
        self.save_action.setShortcut(QKeySequence.StandardKey.Save)
        self.save_action.triggered.connect(self.save_current_file)

        self.save_all_action = QAction("Save A&ll", self)
        self.save_all_action.setShortcut(QKeySequence("Ctrl+Alt+S"))
        self.save_all_action.triggered.connect(self.save_all_files)

        self.close_tab_action = QAction("&Close Tab", self)
        self.close_tab_action.setShortcut(QKeySequence.StandardKey.Close)
        self.close_tab_action.triggered.connect(self.close_current_tab)

        exit_action = QAction("E&xit", self)
        exit_action.setShortcut(QKeySequence.StandardKey.Quit)
        exit_action.triggered.connect(self.close)

        file_menu.addAction(self.open_folder_action)
        file_menu.addSeparator()
        file_menu.addAction(self.new_file_action)
        file_menu.addAction(self.new_folder_action)
        file_menu.addSeparator()
        file_menu.addAction(self.save_action)
        file_menu.addAction(self.save_all_action)
        file_menu.addAction(self.close_tab_action)
        file_menu.addSeparator()
        file_menu.addAction(exit_action)

        self.explorer_toggle_action = QAction("Explorer", self)
        self.output_toggle_action = QAction("Output", self)

        self.refresh_action = QAction("&Refresh", self)
        self.refresh_action.setShortcut(QKeySequence.StandardKey.Refresh)
        self.refresh_action.triggered.connect(self.refresh_tree)

        self.expand_all_action = QAction("&Expand All", self)
        self.expand_all_action.triggered.connect(self.expand_all)

        self.collapse_all_action = QAction("C&ollapse All", self)
        self.collapse_all_action.triggered.connect(self.collapse_all)

        view_menu.addAction(self.explorer_toggle_action)
        view_menu.addAction(self.output_toggle_action)
        view_menu.addSeparator()
        view_menu.addAction(self.refresh_action)
        view_menu.addAction(self.expand_all_action)
        view_menu.addAction(self.collapse_all_action)

    def _build_status_bar(self) -> None:
        self.statusBar().showMessage("Ready")
        self.dirty_status_label = QLabel("")
        self.dirty_status_label.setObjectName("dirtyStatusLabel")
        self.statusBar().addPermanentWidget(self.dirty_status_label)

    def _build_central_editor_area(self) -> None:
        self.editor_stack = QStackedWidget(self)

        self.empty_editor_label = QLabel("No file open.\nSelect a file in the Explorer.", self.editor_stack)
        self.empty_editor_label.setObjectName("emptyEditorLabel")
        self.empty_editor_label.setAlignment(Qt.AlignmentFlag.AlignCenter)

        self.editor_tabs = QTabWidget(self.editor_stack)
        self.editor_tabs.setObjectName("editorTabs")
        self.editor_tabs.setDocumentMode(True)
        self.editor_tabs.setMovable(False)
        self.editor_tabs.setTabsClosable(True)
        self.editor_tabs.tabCloseRequested.connect(self._on_tab_close_requested)
        self.editor_tabs.currentChanged.connect(self._on_current_tab_changed)

        self.editor_stack.addWidget(self.empty_editor_label)
        self.editor_stack.addWidget(self.editor_tabs)
        self.setCentralWidget(self.editor_stack)

    def _build_explorer_dock(self) -> None:
        self.explorer_dock = QDockWidget("Explorer", self)
        self.explorer_dock.setObjectName("explorerDock")
        self.explorer_dock.setAllowedAreas(
            Qt.DockWidgetArea.LeftDockWidgetArea | Qt.DockWidgetArea.RightDockWidgetArea
        )

        self.file_tree = QTreeWidget()
        self.file_tree.setObjectName("workspaceTree")
        self.file_tree.setHeaderHidden(True)
        self.file_tree.setItemsExpandable(False)
        self.file_tree.setExpandsOnDoubleClick(False)
        self.file_tree.setContextMenuPolicy(Qt.ContextMenuPolicy.CustomContextMenu)
        self.file_tree.customContextMenuRequested.connect(self._show_tree_context_menu)
        self.file_tree.itemClicked.connect(self._on_tree_item_clicked)

        self.explorer_placeholder = QLabel("No folder opened.\nUse File > Open Folder...", self.explorer_dock)
        self.explorer_placeholder.setObjectName("explorerPlaceholder")
        self.explorer_placeholder.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.explorer_placeholder.setWordWrap(True)

        self.explorer_stack = QStackedWidget(self.explorer_dock)
        self.explorer_stack.addWidget(self.explorer_placeholder)
        self.explorer_stack.addWidget(self.file_tree)

        self.explorer_dock.setWidget(self.explorer_stack)
        self.addDockWidget(Qt.DockWidgetArea.LeftDockWidgetArea, self.explorer_dock)
        self.explorer_toggle_action.setCheckable(True)
        self.explorer_toggle_action.setChecked(True)
        self.explorer_toggle_action.toggled.connect(self.explorer_dock.setVisible)
        self.explorer_dock.visibilityChanged.connect(self.explorer_toggle_action.setChecked)

    def _build_output_dock(self) -> None:
        self.output_dock = QDockWidget("Output", self)
        self.output_dock.setObjectName("outputDock")
        self.output_dock.setAllowedAreas(
            Qt.DockWidgetArea.BottomDockWidgetArea | Qt.DockWidgetArea.TopDockWidgetArea
        )

        self.output_panel = QPlainTextEdit()
        self.output_panel.setReadOnly(True)
        self.output_panel.setObjectName("outputPanel")
        self.output_panel.setMaximumBlockCount(5000)

        self.output_dock.setWidget(self.output_panel)
        self.addDockWidget(Qt.DockWidgetArea.BottomDockWidgetArea, self.output_dock)
        self.output_toggle_action.setCheckable(True)
        self.output_toggle_action.setChecked(True)
        self.output_toggle_action.toggled.connect(self.output_dock.setVisible)
        self.output_dock.visibilityChanged.connect(self.output_toggle_action.setChecked)

    def attach_log_handler(self, handler: OutputPanelHandler) -> None:
        handler.bridge.message.connect(self.output_panel.appendPlainText)

    def start(self) -> None:
        self._run(self.controller.load_initial_root(), "Open Workspace")

    def _run(self, coro: Coroutine[Any, Any, Any], action_name: str) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda finished, name=action_name: self._on_task_finished(finished, name))
        QTimer.singleShot(0, self._refresh_views)
        return task

    def _on_task_finished(self, task: asyncio.Task[Any], action_name: str) -> None:
        self._tasks.discard(task)
        if not task.cancelled():
            error = task.exception()
            if isinstance(error, WorkspaceError):
                self._show_error(action_name, error)
            elif error is not None:
                logger.error("[error] %s failed", action_name, exc_info=error)
        self._refresh_views()

    def open_folder_dialog(self) -> None:
        start_dir = self.controller.root_path or ""
        folder = QFileDialog.getExistingDirectory(self, "Open Folder", start_dir)
        if folder:
            self._run(self.controller.set_root(folder), "Open Folder")

    def refresh_tree(self) -> None:
        self._run(self.controller.reload(), "Refresh")

    def expand_all(self) -> None:
        self.controller.tree.expand_all()
        self._render_tree()

    def collapse_all(self) -> None:
        self.controller.tree.collapse_all()
        self._render_tree()

    def save_current_file(self) -> None:
        document = self.controller.documents.active_document
        if document is None:
            return
        self._run(self._save_document(document), "Save File")

    async def _save_document(self, document: OpenDocument) -> None:
        if await self.controller.save(document.path):
            self.statusBar().showMessage(f"Saved {document.path}", self._STATUS_TIMEOUT_MS)

    def save_all_files(self) -> None:
        self._run(self._save_all(), "Save All")

    async def _save_all(self) -> None:
        failures = await self.controller.save_all()
        for failure in failures:
            self._show_error("Save File", failure)
        if not failures:
            self.statusBar().showMessage("All files saved.", self._STATUS_TIMEOUT_MS)

    def close_current_tab(self) -> None:
        document = self.controller.documents.active_document
        if document is not None:
            self.controller.close(document.path)
            self._refresh_views()

    def _target_directory(self) -> str | None:
        selected = self.controller.tree.selected_node()
        if selected is not None:
            return selected.path if selected.is_dir else paths.parent_of(selected.path)
        return self.controller.root_path

    def _show_tree_context_menu(self, pos: QPoint) -> None:
        root_path = self.controller.root_path
        if not root_path:
            return

        item = self.file_tree.itemAt(pos)
        node = self.controller.tree.find(item.data(0, self._PATH_ROLE)) if item is not None else None
        if node is None:
            parent_dir = root_path
        else:
            parent_dir = node.path if node.is_dir else paths.parent_of(node.path)

        menu = QMenu(self)
        new_file_action = menu.addAction("New File")
        new_folder_action = menu.addAction("New Folder")
        rename_action = menu.addAction("Rename")
        delete_action = menu.addAction("Delete")
        if node is None:
            rename_action.setEnabled(False)
            delete_action.setEnabled(False)

        selected_action = menu.exec(self.file_tree.viewport().mapToGlobal(pos))
        if selected_action is None:
            return
        if selected_action == new_file_action:
            self._create_entry(parent_dir, NodeKind.FILE)
        elif selected_action == new_folder_action:
            self._create_entry(parent_dir, NodeKind.DIRECTORY)
        elif selected_action == rename_action and node is not None:
            self._rename_entry(node)
        elif selected_action == delete_action and node is not None:
            self._delete_entry(node)

    def _create_entry(self, parent_dir: str | None, kind: NodeKind) -> None:
        if parent_dir is None:
            return
        title = "New Folder" if kind is NodeKind.DIRECTORY else "New File"
        name, ok = QInputDialog.getText(self, title, "Folder name:" if kind is NodeKind.DIRECTORY else "File name:")
        if not ok or not name.strip():
            return
        self._run(self.mutations.create(parent_dir, name, kind), title)

    def _rename_entry(self, node: TreeNode) -> None:
        new_name, ok = QInputDialog.getText(self, "Rename", "New name:", text=node.name)
        if not ok:
            return
        new_name = new_name.strip()
        if not new_name or new_name == node.name:
            return
        self._run(self.mutations.rename_to(node.path, new_name), "Rename")

    def _delete_entry(self, node: TreeNode) -> None:
        label = "folder" if node.is_dir else "file"
        answer = QMessageBox.question(
            self,
            "Delete",
            f"Delete this {label}?\n{node.path}",
            QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No,
            QMessageBox.StandardButton.No,
        )
        if answer != QMessageBox.StandardButton.Yes:
            return
        self._run(self.mutations.delete(node.path), "Delete")

    def _on_tree_item_clicked(self, item: QTreeWidgetItem, _column: int) -> None:
        path = item.data(0, self._PATH_ROLE)
        if isinstance(path, str):
            self._run(self.controller.select(path), "Open File")

    def _on_tab_close_requested(self, tab_index: int) -> None:
        document = self._document_at(tab_index)
        if document is not None:
            self.controller.close(document.path)
        self._refresh_views()

    def _on_current_tab_changed(self, tab_index: int) -> None:
        if self._syncing_views or tab_index < 0:
            return
        document = self._document_at(tab_index)
        if document is not None and document.path in self.controller.documents:
            self.controller.activate(document.path)
            self._render_tree()
            self._update_status(document)

    def _on_editor_text_changed(self, document: OpenDocument, editor: QPlainTextEdit) -> None:
        if self._syncing_views or document.path not in self.controller.documents:
            return
        self.controller.edit(document.path, editor.toPlainText())
        self._update_tab_title(document)
        self._update_status(document)

    def _document_at(self, tab_index: int) -> OpenDocument | None:
        widget = self.editor_tabs.widget(tab_index)
        for document, editor in self._editors.items():
            if editor is widget:
                return document
        return None

    def _create_editor_widget(self, document: OpenDocument) -> QPlainTextEdit:
        editor = QPlainTextEdit(self.editor_tabs)
        editor.setObjectName("documentEditor")
        editor.setPlainText(document.content)
        editor.textChanged.connect(lambda d=document, e=editor: self._on_editor_text_changed(d, e))
        return editor

    def _refresh_views(self) -> None:
        self._render_tree()
        self._sync_tabs()
        root_path = self.controller.root_path
        if root_path:
            self.explorer_dock.setWindowTitle(f"Explorer - {paths.basename(root_path)}")
            self.setWindowTitle(f"Nodian - {root_path}")
        else:
            self.explorer_dock.setWindowTitle("Explorer")
            self.setWindowTitle("Nodian")
        self._update_status(self.controller.documents.active_document)

    def _render_tree(self) -> None:
        tree = self.controller.tree
        root = tree.root
        self.explorer_stack.setCurrentWidget(self.file_tree if root is not None else self.explorer_placeholder)

        self.file_tree.blockSignals(True)
        try:
            self.file_tree.clear()
            if root is None:
                return
            for child in tree.sorted_children(root):
                self.file_tree.addTopLevelItem(self._build_tree_item(child))
            selected = self._find_tree_item(tree.selection.selected_path)
            if selected is not None:
                self.file_tree.setCurrentItem(selected)
        finally:
            self.file_tree.blockSignals(False)

    def _build_tree_item(self, node: TreeNode) -> QTreeWidgetItem:
        tree = self.controller.tree
        item = QTreeWidgetItem([node.name])
        item.setData(0, self._PATH_ROLE, node.path)
        item.setToolTip(0, node.path)
        if node.is_dir:
            item.setChildIndicatorPolicy(QTreeWidgetItem.ChildIndicatorPolicy.ShowIndicator)
            if tree.is_expanded(node.path):
                for child in tree.sorted_children(node):
                    item.addChild(self._build_tree_item(child))
                item.setExpanded(True)
        return item

    def _find_tree_item(self, path: str | None) -> QTreeWidgetItem | None:
        if path is None:
            return None
        pending = [self.file_tree.topLevelItem(index) for index in range(self.file_tree.topLevelItemCount())]
        while pending:
            item = pending.pop()
            if item.data(0, self._PATH_ROLE) == path:
                return item
            pending.extend(item.child(index) for index in range(item.childCount()))
        return None

    def _sync_tabs(self) -> None:
        documents = self.controller.documents.documents()
        self._syncing_views = True
        try:
            for document in list(self._editors):
                if document not in documents:
                    editor = self._editors.pop(document)
                    tab_index = self.editor_tabs.indexOf(editor)
                    if tab_index >= 0:
                        self.editor_tabs.removeTab(tab_index)
                    editor.deleteLater()

            for position, document in enumerate(documents):
                editor = self._editors.get(document)
                if editor is None:
                    editor = self._create_editor_widget(document)
                    self._editors[document] = editor
                if self.editor_tabs.indexOf(editor) != position:
                    current_index = self.editor_tabs.indexOf(editor)
                    if current_index >= 0:
                        self.editor_tabs.removeTab(current_index)
                    self.editor_tabs.insertTab(position, editor, "")
                if editor.toPlainText() != document.content:
                    editor.setPlainText(document.content)
                self._update_tab_title(document)

            active = self.controller.documents.active_document
            if active is not None and active in self._editors:
                self.editor_tabs.setCurrentWidget(self._editors[active])
        finally:
            self._syncing_views = False

        self.editor_stack.setCurrentWidget(self.editor_tabs if documents else self.empty_editor_label)

    def _update_tab_title(self, document: OpenDocument) -> None:
        editor = self._editors.get(document)
        if editor is None:
            return
        tab_index = self.editor_tabs.indexOf(editor)
        if tab_index < 0:
            return
        dirty_prefix = "*" if document.is_dirty else ""
        self.editor_tabs.setTabText(tab_index, f"{dirty_prefix}{document.display_name}")
        self.editor_tabs.setTabToolTip(tab_index, document.path)

    def _update_status(self, document: OpenDocument | None) -> None:
        dirty_count = len(self.controller.documents.dirty_paths())
        if dirty_count:
            self.dirty_status_label.setText(f"{dirty_count} unsaved")
        else:
            self.dirty_status_label.setText("")
        if document is not None and not document.is_loaded and self.controller.documents.is_pending(document.path):
            self.statusBar().showMessage(f"Loading {document.path}...", self._STATUS_TIMEOUT_MS)

    def _confirm_discard_changes(self) -> bool:
        dirty = self.controller.documents.dirty_paths()
        if not dirty:
            return True
        names = "\n".join(paths.basename(path) for path in dirty)
        answer = QMessageBox.warning(
            self,
            "Unsaved Changes",
            f"Discard unsaved changes to:\n{names}",
            QMessageBox.StandardButton.Discard | QMessageBox.StandardButton.Cancel,
            QMessageBox.StandardButton.Cancel,
        )
        return answer == QMessageBox.StandardButton.Discard

    def closeEvent(self, event: QCloseEvent) -> None:  # noqa: N802 (Qt API)
        if not self._confirm_discard_changes():
            event.ignore()
            return
        for task in list(self._tasks):
            task.cancel()
        event.accept()

    def _show_error(self, action_name: str, error: WorkspaceError) -> None:
        message = f"{action_name} failed:\n{getattr(error, 'path', '')}\n\n{error}"
        QMessageBox.critical(self, action_name, message)
        logger.error("[error] %s", message.replace("\n", " "))
