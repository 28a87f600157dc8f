from pathlib import Path


def resolve_path(value: str | Path, cwd: Path | None = None) -> Path:
    """Returns `value` as an absolute path, joining relative paths onto `cwd`.

    Absolute paths are returned unchanged. Relative paths are joined onto the
    process working directory (or `cwd` when given) without resolving symlinks.

    Args:
        value (str | Path): The path to normalize.
        cwd (Path | None, optional): Base directory for relative paths.
                                     Defaults to the process working directory.

    Returns:
        Path: The absolute path.
    """
    path = Path(value)
    if path.is_absolute():
        return path
    base = cwd if cwd is not None else Path.cwd()
    return base / path
