"""
Import path resolution for Skald source files

Maps an import such as "json-utils/parser" to a .sk file by searching the
working directory, the project's modules directory, the user package
directory and the shared directory, in that order.
"""

from pathlib import Path
from typing import List, Optional, Union

from .layout import PathLayout, Scope

SOURCE_SUFFIX = ".sk"
IMPORT_CONFIG_FILE = ".skald_imports"


class ImportResolver:
    """Finds source files for import paths"""

    def __init__(self, layout: PathLayout):
        self.layout = layout

    def search_paths(self, working_dir: Union[str, Path] = ".") -> List[Path]:
        return [
            Path(working_dir),
            self.layout.scope_root(Scope.LOCAL),
            self.layout.scope_root(Scope.USER),
            self.layout.scope_root(Scope.GLOBAL),
        ]

    def resolve(self, import_path: str, working_dir: Union[str, Path] = ".") -> Path:
        """
        Resolve an import to an existing source file

        Package imports ("pkg/sub/module") found in the user or shared
        directories use the newest installed version of the package.

        Raises:
            ImportError: No search path contains the import
        """
        if import_path.endswith(SOURCE_SUFFIX):
            import_path = import_path[:-len(SOURCE_SUFFIX)]

        versioned_roots = {
            self.layout.scope_root(Scope.USER): Scope.USER,
            self.layout.scope_root(Scope.GLOBAL): Scope.GLOBAL,
        }
        parts = import_path.split("/")

        for base in self.search_paths(working_dir):
            candidate = base / (import_path + SOURCE_SUFFIX)
            if candidate.is_file():
                return candidate

            scope = versioned_roots.get(base)
            if scope is not None and len(parts) > 1:
                candidate = self._package_file(parts, scope)
                if candidate is not None:
                    return candidate

        raise ImportError(f"import not found: {import_path}")

    def _package_file(self, parts: List[str], scope: Scope) -> Optional[Path]:
        versions = self.layout.installed_versions(parts[0], scope)
        if not versions:
            return None

        latest = self.layout.package_path(parts[0], versions[-1], scope)
        candidate = latest.joinpath(*parts[1:-1]) / (parts[-1] + SOURCE_SUFFIX)
        return candidate if candidate.is_file() else None

    def write_import_config(self, project_dir: Union[str, Path]) -> Path:
        """Write the search paths, one per line, for the language runtime"""
        config_path = Path(project_dir) / IMPORT_CONFIG_FILE
        paths = self.search_paths(project_dir)
        config_path.write_text("\n".join(str(p) for p in paths) + "\n")
        return config_path
