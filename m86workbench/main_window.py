from __future__ import annotations

import io
from typing import Optional

from PyQt6.QtCore import Qt
from PyQt6.QtGui import QAction, QColor, QFont, QFontDatabase, QKeySequence, QSyntaxHighlighter, QTextCharFormat
from PyQt6.QtWidgets import (
    QApplication,
    QFileDialog,
    QHeaderView,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QPlainTextEdit,
    QSplitter,
    QStatusBar,
    QTableWidget,
    QTableWidgetItem,
    QTabWidget,
    QVBoxLayout,
    QWidget,
)

from m86asm.binary import BinaryImage, generate_binary
from m86asm.cli import SOURCE_ERRORS
from m86asm.emulator import EmulationError, Emulator
from m86asm.encoding import format_word
from m86asm.isa import DescriptorFormatError, IsaDescriptor, load_default_descriptor, load_descriptor_file
from m86asm.model import Program, SymbolTable
from m86asm.parser import parse_integer, parse_source
from m86asm.source import SOURCE_COMMENT, UnreadableInputError, read_text
from m86asm.transliterate import generate_cpp


RUN_STEP_LIMIT = 100_000


class AsmHighlighter(QSyntaxHighlighter):
    def __init__(self, parent, descriptor: IsaDescriptor) -> None:
        super().__init__(parent)
        self.mnemonic_format = QTextCharFormat()
        self.mnemonic_format.setForeground(QColor("#ff79c6"))
        self.mnemonic_format.setFontWeight(QFont.Weight.Bold)

        self.keyword_format = QTextCharFormat()
        self.keyword_format.setForeground(QColor("#8be9fd"))
        self.keyword_format.setFontWeight(QFont.Weight.Medium)

        self.label_format = QTextCharFormat()
        self.label_format.setForeground(QColor("#50fa7b"))

        self.number_format = QTextCharFormat()
        self.number_format.setForeground(QColor("#ffb86c"))

        self.comment_format = QTextCharFormat()
        self.comment_format.setForeground(QColor("#6272a4"))

        self.set_descriptor(descriptor)

    def set_descriptor(self, descriptor: IsaDescriptor) -> None:
        self.mnemonics = set(descriptor.mnemonics)
        self.keyword = descriptor.declaration_keyword
        self.rehighlight()

    def highlightBlock(self, text: str) -> None:
        comment_index = text.find(SOURCE_COMMENT)
        if comment_index >= 0:
            self.setFormat(comment_index, len(text) - comment_index, self.comment_format)
            text = text[:comment_index]

        offset = 0
        for tok in text.split():
            start = text.find(tok, offset)
            offset = start + len(tok)
            if tok in self.mnemonics:
                self.setFormat(start, len(tok), self.mnemonic_format)
            elif tok == self.keyword:
                self.setFormat(start, len(tok), self.keyword_format)
            elif tok.endswith(":"):
                self.setFormat(start, len(tok), self.label_format)
            elif parse_integer(tok) is not None:
                self.setFormat(start, len(tok), self.number_format)



class MainWindow(QMainWindow):
    def __init__(self, descriptor: Optional[IsaDescriptor] = None) -> None:
        super().__init__()
        self.setWindowTitle("M86 Workbench")
        self.resize(1200, 700)

        self.descriptor = descriptor or load_default_descriptor()
        self.current_file: Optional[str] = None
        self.run_state = "Ready"
        self.program = Program(instructions=(), symbols=SymbolTable())
        self.image: Optional[BinaryImage] = None

        self._build_ui()
        self._populate_instruction_table()
        self._update_status()

    def _build_ui(self) -> None:
        file_menu = self.menuBar().addMenu("&File")
        open_action = QAction("Open...", self)
        open_action.setShortcut(QKeySequence.StandardKey.Open)
        open_action.triggered.connect(self.open_file)
        file_menu.addAction(open_action)
        save_action = QAction("Save", self)
        save_action.setShortcut(QKeySequence.StandardKey.Save)
        save_action.triggered.connect(self.save_file)
        file_menu.addAction(save_action)
        isa_action = QAction("Load Instruction Set...", self)
        isa_action.triggered.connect(self.open_descriptor)
        file_menu.addAction(isa_action)

        translate_action = QAction("Translate", self)
        translate_action.setShortcut(QKeySequence("F5"))
        translate_action.triggered.connect(self.translate_source)
        self.menuBar().addAction(translate_action)
        run_action = QAction("Run", self)
        run_action.setShortcut(QKeySequence("F6"))
        run_action.triggered.connect(self.run_program)
        self.menuBar().addAction(run_action)

        self.editor = QPlainTextEdit()
        self.editor.setFont(self._default_font())
        self.highlighter = AsmHighlighter(self.editor.document(), self.descriptor)

        self.binary_output = QPlainTextEdit()
        self.binary_output.setReadOnly(True)
        self.binary_output.setFont(self._default_font())
        self.cpp_output = QPlainTextEdit()
        self.cpp_output.setReadOnly(True)
        self.cpp_output.setFont(self._default_font())

        self.symbol_table = QTableWidget(0, 4)
        self.symbol_table.setHorizontalHeaderLabels(["Name", "Kind", "Position", "Value"])
        self._configure_table(self.symbol_table)

        self.output_tabs = QTabWidget()
        self.output_tabs.addTab(self.binary_output, "Micro86")
        self.output_tabs.addTab(self.cpp_output, "C++")
        self.output_tabs.addTab(self.symbol_table, "Symbols")
        self.output_tabs.addTab(self._build_run_tab(), "Run")
        self.output_tabs.addTab(self._build_instruction_tab(), "Instruction Set")

        self.log_output = QPlainTextEdit()
        self.log_output.setReadOnly(True)

        top = QSplitter(Qt.Orientation.Horizontal)
        top.addWidget(self.editor)
        top.addWidget(self.output_tabs)
        top.setSizes([600, 600])
        main = QSplitter(Qt.Orientation.Vertical)
        main.addWidget(top)
        main.addWidget(self.log_output)
        main.setSizes([550, 150])
        self.setCentralWidget(main)

        self.state_label = QLabel()
        status = QStatusBar()
        status.addWidget(self.state_label)
        self.setStatusBar(status)
        self.editor.cursorPositionChanged.connect(self._update_status)

    def _configure_table(self, table: QTableWidget) -> None:
        table.verticalHeader().setVisible(False)
        table.setEditTriggers(QTableWidget.EditTrigger.NoEditTriggers)
        table.setSelectionBehavior(QTableWidget.SelectionBehavior.SelectRows)
        table.setFont(self._default_font())
        header = table.horizontalHeader()
        header.setSectionResizeMode(QHeaderView.ResizeMode.Interactive)
        header.setStretchLastSection(True)

    def _build_run_tab(self) -> QWidget:
        self.run_tab = QWidget()
        layout = QVBoxLayout(self.run_tab)
        layout.setContentsMargins(0, 0, 0, 0)
        self.run_input = QLineEdit()
        self.run_input.setPlaceholderText("Program input (read by IN)...")
        layout.addWidget(self.run_input)
        self.run_output = QPlainTextEdit()
        self.run_output.setReadOnly(True)
        self.run_output.setFont(self._default_font())
        layout.addWidget(self.run_output)
        return self.run_tab

    def _build_instruction_tab(self) -> QWidget:
        widget = QWidget()
        layout = QVBoxLayout(widget)
        layout.setContentsMargins(0, 0, 0, 0)
        self.instruction_search = QLineEdit()
        self.instruction_search.setPlaceholderText("Search instructions...")
        self.instruction_search.textChanged.connect(self.filter_instruction_table)
        layout.addWidget(self.instruction_search)

        self.instruction_table = QTableWidget(0, 4)
        self.instruction_table.setHorizontalHeaderLabels(["Mnemonic", "Opcode", "Operand", "Role"])
        self._configure_table(self.instruction_table)
        layout.addWidget(self.instruction_table)
        return widget

    def _populate_instruction_table(self) -> None:
        entries = [self.descriptor.by_mnemonic[name] for name in self.descriptor.mnemonics]
        self.instruction_table.setRowCount(len(entries))
        for row, entry in enumerate(entries):
            operand = "immediate" if entry.is_immediate else "direct" if entry.has_operand else "-"
            self.instruction_table.setItem(row, 0, QTableWidgetItem(entry.mnemonic))
            self.instruction_table.setItem(row, 1, QTableWidgetItem(f"{entry.opcode:04X}"))
            self.instruction_table.setItem(row, 2, QTableWidgetItem(operand))
            self.instruction_table.setItem(row, 3, QTableWidgetItem(entry.role or "-"))

    def filter_instruction_table(self, text: str) -> None:
        query = text.strip().lower()
        for row in range(self.instruction_table.rowCount()):
            matches = False
            for col in range(self.instruction_table.columnCount()):
                item = self.instruction_table.item(row, col)
                if item and query in item.text().lower():
                    matches = True
                    break
            self.instruction_table.setRowHidden(row, not matches if query else False)

    def _populate_symbols(self) -> None:
        rows = []
        for name, position in self.program.symbols.labels.items():
            rows.append((name, "label", str(position), ""))
        for name, value in self.program.symbols.variables.items():
            ordinal = self.program.symbols.variable_positions[name]
            address = self.program.variable_address(name)
            rows.append((name, f"variable #{ordinal}", str(address), str(value)))

        self.symbol_table.setRowCount(len(rows))
        for row, columns in enumerate(rows):
            for col, value in enumerate(columns):
                self.symbol_table.setItem(row, col, QTableWidgetItem(value))

    def _default_font(self) -> QFont:
        preferred = ["JetBrains Mono", "Fira Code", "Source Code Pro", "DejaVu Sans Mono", "Consolas", "Menlo"]
        available = set(QFontDatabase.families())
        for name in preferred:
            if name in available:
                return QFont(name, 11)
        return QFont("Monospace", 11)

    def open_file(self) -> None:
        path, _ = QFileDialog.getOpenFileName(self, "Open source", "", "Micro86 Files (*.m86 *.asm);;All Files (*)")
        if not path:
            return
        self.open_file_path(path)

    def open_file_path(self, path: str) -> bool:
        try:
            self.editor.setPlainText(read_text(path))
        except UnreadableInputError as exc:
            QMessageBox.warning(self, "Open Failed", exc.message)
            return False
        self.current_file = path
        self.log(f"Opened {path}")
        return True

    def save_file(self) -> None:
        if not self.current_file:
            path, _ = QFileDialog.getSaveFileName(self, "Save source", "", "Micro86 Files (*.m86 *.asm);;All Files (*)")
            if not path:
                return
            self.current_file = path
        try:
            with open(self.current_file, "w", encoding="utf-8") as file:
                file.write(self.editor.toPlainText())
            self.log(f"Saved {self.current_file}")
        except OSError as exc:
            QMessageBox.warning(self, "Save Failed", str(exc))

    def open_descriptor(self) -> None:
        path, _ = QFileDialog.getOpenFileName(self, "Open instruction set", "", "Descriptors (*.m86db);;All Files (*)")
        if not path:
            return
        self.load_descriptor_path(path)

    def load_descriptor_path(self, path: str) -> bool:
        try:
            descriptor = load_descriptor_file(path)
        except UnreadableInputError as exc:
            self.log(exc.message)
            return False
        except DescriptorFormatError as exc:
            self.log(f"Descriptor error (line {exc.line_no}): {exc.message}")
            self.log(f"  {exc.text}")
            return False
        self.descriptor = descriptor
        self.highlighter.set_descriptor(descriptor)
        self._populate_instruction_table()
        self.log(f"Loaded instruction set {path} ({len(descriptor.mnemonics)} mnemonics)")
        return True

    def translate_source(self) -> bool:
        self.binary_output.clear()
        self.cpp_output.clear()
        try:
            program = parse_source(self.editor.toPlainText(), self.descriptor)
            image = generate_binary(program, self.descriptor)
            cpp = generate_cpp(program, self.descriptor)
        except SOURCE_ERRORS as exc:
            self.program = Program(instructions=(), symbols=SymbolTable())
            self.image = None
            self.symbol_table.setRowCount(0)
            self.set_state("Error")
            line_no = getattr(exc, "line_no", 0)
            self.log(f"Translation error (line {line_no}): {exc.message}" if line_no else f"Translation error: {exc.message}")
            return False

        self.program = program
        self.image = image
        self.binary_output.setPlainText(
            "\n".join(f"{index:04d}  {format_word(word)}" for index, word in enumerate(image.words))
        )
        self.cpp_output.setPlainText(cpp)
        self._populate_symbols()
        self.log(f"Translated {program.instruction_count} instructions, {program.variable_count} variables.")
        self.set_state("Ready")
        return True

    def run_program(self) -> bool:
        if not self.translate_source():
            return False
        self.run_output.clear()
        try:
            emulator = Emulator(self.image.words, self.descriptor, resize=True, stdin=io.StringIO(self.run_input.text()))
        except EmulationError as exc:
            self.set_state("Error")
            self.log(f"Run error: {exc}")
            return False

        output = io.StringIO()
        outcome = emulator.run(stdout=output, max_steps=RUN_STEP_LIMIT)
        self.run_output.setPlainText(output.getvalue() + emulator.postmortem())
        self.output_tabs.setCurrentWidget(self.run_tab)
        if outcome.error is not None:
            self.set_state("Error")
            self.log(f"Run error: {outcome.error}")
            return False
        self.log(f"Halted after {emulator.steps} steps, acc = {emulator.cpu.acc}.")
        self.set_state("Halted")
        return True

    def _update_status(self) -> None:
        line_no = self.editor.textCursor().blockNumber() + 1
        self.state_label.setText(
            f"{self.run_state} | Ln {line_no} | {self.program.instruction_count} instructions"
            f" | ISA: {self.descriptor.source}"
        )

    def set_state(self, state: str) -> None:
        self.run_state = state
        self._update_status()

    def log(self, message: str) -> None:
        self.log_output.appendPlainText(message)


def run_app() -> None:
    app = QApplication([])
    window = MainWindow()
    window.show()
    app.exec()
