"""Configuration errors."""

# Hints shown next to a missing setting
SETTING_HINTS: dict[str, str] = {
    "NOTION_API_KEY": "Create an internal integration in Notion and export its secret.",
    "NOTION_DATABASE_ID": "Set source.database_id in the config file or the environment.",
    "EXPORT_OUTPUT_DIR": "Set output_dir in the config file or the environment.",
}


class ConfigError(Exception):
    """Raised when required settings are missing or invalid.

    Fatal before any run state is created.
    """

    def __init__(
        self,
        missing: list[str] | None = None,
        errors: list[dict[str, str]] | None = None,
        source: str | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            missing: Names of required settings that are not set.
            errors: Validation error details (loc, msg, type).
            source: Config file the errors came from, if any.
        """
        self.missing = list(missing or [])
        self.errors = list(errors or [])
        self.source = source

        parts: list[str] = []
        if self.missing:
            parts.append(f"missing settings: {', '.join(self.missing)}")
        if self.errors:
            parts.append(f"{len(self.errors)} invalid values")
        where = f" in {source}" if source else ""
        super().__init__(f"Configuration error{where}: {'; '.join(parts)}")

    def describe(self) -> list[str]:
        """Render one human-readable line per problem."""
        lines = [
            f"{name} is required. {SETTING_HINTS.get(name, '')}".rstrip()
            for name in self.missing
        ]
        lines.extend(f"{err['loc']}: {err['msg']}" for err in self.errors)
        return lines
