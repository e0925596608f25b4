"""Write generated scene modules and the project index to disk."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from .codegen import GenerationResult, generate_project_index, scene_function_name
from .persistence import SceneDocument, ScriptFileStore, hydrate_scripts

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.js"


@dataclass
class ExportReport:
    """Outcome of exporting a batch of scenes.

    ``errors`` maps scene names to the reason the scene was not written, while
    ``script_errors`` maps script paths that could not be read (the scene is
    still written without them).
    """

    written: list[Path] = field(default_factory=list)
    index_path: Path | None = None
    errors: dict[str, str] = field(default_factory=dict)
    script_errors: dict[str, str] = field(default_factory=dict)
    warnings: dict[str, list[str]] = field(default_factory=dict)
    results: dict[str, GenerationResult] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors and not self.script_errors


def _read_optional(path: Path) -> str | None:
    if not path.exists():
        return None
    return path.read_text(encoding="utf-8")


def _write_atomic(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temporary = path.with_name(f"{path.name}.tmp")
    temporary.write_text(content, encoding="utf-8")
    temporary.replace(path)


class ProjectExporter:
    """Generate scene files under ``project_root`` one scene at a time.

    Each scene file is read, merged with its user regions and written back
    before the next scene is touched, so a failure leaves the remaining files
    as they were.
    """

    def __init__(
        self,
        project_root: Path,
        *,
        output_dir: str = "scenes",
        script_store: ScriptFileStore | None = None,
        write_index: bool = True,
        background: str = "#2a2a2a",
    ) -> None:
        self.project_root = Path(project_root)
        self.output_dir = output_dir
        self.script_store = script_store
        self.write_index = write_index
        self.background = background

    def scene_path(self, document: SceneDocument) -> Path:
        return self.project_root / self.output_dir / f"{scene_function_name(document.name)}.js"

    @property
    def index_path(self) -> Path:
        return self.project_root / INDEX_FILENAME

    async def export(
        self,
        documents: Sequence[SceneDocument],
        *,
        index_documents: Sequence[SceneDocument] | None = None,
    ) -> ExportReport:
        """Generate and write every document, then refresh the project index.

        Args:
            documents: Scenes to generate, written in order.
            index_documents: Scenes listed by the project index. Defaults to
                ``documents``; only scenes whose file exists are listed.
        """

        report = ExportReport()
        claimed: dict[Path, str] = {}
        for document in documents:
            path = self.scene_path(document)
            owner = claimed.get(path)
            if owner is not None:
                message = (
                    f"Scene '{document.name}' generates the same file {path.name} "
                    f"as scene '{owner}'"
                )
                report.errors[document.name] = message
                logger.error("Failed to export scene '%s': %s", document.name, message)
                continue
            claimed[path] = document.name

            try:
                path = await self._export_document(document, report)
            except (OSError, ValueError) as exc:
                report.errors[document.name] = str(exc)
                logger.error("Failed to export scene '%s': %s", document.name, exc)
                continue
            report.written.append(path)

        if self.write_index and report.written:
            candidates = documents if index_documents is None else index_documents
            exported = self._indexed(candidates)
            if exported:
                index = generate_project_index(
                    [document.name for document in exported],
                    exported[0].viewport,
                    background=self.background,
                    scenes_dir=self.output_dir,
                )
                try:
                    await asyncio.to_thread(_write_atomic, self.index_path, index)
                except OSError as exc:
                    report.errors[INDEX_FILENAME] = str(exc)
                    logger.error("Failed to write project index: %s", exc)
                else:
                    report.index_path = self.index_path

        logger.info(
            "Exported %d of %d scene(s) to %s",
            len(report.written),
            len(documents),
            self.project_root / self.output_dir,
        )
        return report

    def _indexed(self, documents: Sequence[SceneDocument]) -> list[SceneDocument]:
        """Return the documents with a generated file, one per module name."""

        indexed: list[SceneDocument] = []
        modules: set[str] = set()
        for document in documents:
            module = scene_function_name(document.name)
            if module in modules or not self.scene_path(document).is_file():
                continue
            modules.add(module)
            indexed.append(document)
        return indexed

    async def read_existing(self, document: SceneDocument) -> str | None:
        """Return the current generated file of ``document``, if there is one."""

        return await asyncio.to_thread(_read_optional, self.scene_path(document))

    def export_sync(self, documents: Sequence[SceneDocument]) -> ExportReport:
        return asyncio.run(self.export(documents))

    async def _export_document(self, document: SceneDocument, report: ExportReport) -> Path:
        if self.script_store is not None:
            hydration = await asyncio.to_thread(hydrate_scripts, document, self.script_store)
            report.script_errors.update(hydration.errors)

        path = self.scene_path(document)
        existing = await self.read_existing(document)
        result = document.generate(existing)
        report.results[document.name] = result
        if result.warnings:
            report.warnings[document.name] = list(result.warnings)

        await asyncio.to_thread(_write_atomic, path, result.code)
        logger.info("Wrote scene '%s' to %s", document.name, path)
        return path


__all__ = ["ExportReport", "INDEX_FILENAME", "ProjectExporter"]
