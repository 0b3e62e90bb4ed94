"""Asset builder: generate bundler inputs and run the external bundler."""

import asyncio
import logging

from greact import templates
from greact.config import GreactConfig

logger = logging.getLogger(__name__)


class BuildError(RuntimeError):
    """The asset build could not complete."""


class AssetBuilder:
    """Builds the static pages of the client directory.

    Concurrent ``build()`` calls are serialized; a call made while a build is
    running waits for it and then builds again.
    """

    def __init__(self, config: GreactConfig, dev: bool = False):
        """Initialize builder.

        Args:
            config: Project configuration
            dev: Inject the live-reload script into the HTML template
        """
        self.config = config
        self.dev = dev
        self._lock = asyncio.Lock()

    @property
    def reload_url(self) -> str:
        dev = self.config.dev
        return f"ws://{dev.reload_host}:{dev.reload_port}/ws"

    def scaffold_client(self) -> bool:
        """Create a starter client directory when none exists.

        Writes a sample index page, package.json, the build folder and the
        hydrater. Dependencies are not installed.

        Returns:
            True if the client was created, False if it already existed
        """
        client = self.config.client
        if client.path.exists():
            return False

        logger.info("creating client...")
        client.source_path.mkdir(parents=True)
        (client.source_path / templates.SAMPLE_PAGE_FILE).write_text(templates.SAMPLE_PAGE)
        (client.path / templates.PACKAGE_JSON_FILE).write_text(templates.PACKAGE_JSON)
        client.build_path.mkdir(parents=True, exist_ok=True)
        (client.build_path / templates.HYDRATER_FILE).write_text(templates.HYDRATER)
        logger.info(f"created client in {client.path}, run npm install there before building")
        return True

    def check_client(self) -> None:
        """Make sure the client directory is ready for the bundler.

        Raises:
            BuildError: If sources or installed dependencies are missing
        """
        client = self.config.client
        if not client.path.is_dir():
            raise BuildError(f"client directory {client.path} does not exist")
        if not client.source_path.is_dir():
            raise BuildError(f"source directory {client.source_path} does not exist")
        if not (client.path / "node_modules").is_dir():
            raise BuildError(f"{client.path / 'node_modules'} does not exist, run npm install first")

    def page_names(self) -> list[str]:
        source = self.config.client.source_path
        return templates.page_names([entry.name for entry in source.iterdir() if entry.is_file()])

    def write_sources(self) -> list[str]:
        """Write template, renderer, hydrater and bundler config.

        Returns:
            Page names found in the source directory
        """
        self.check_client()
        client = self.config.client
        pages = self.page_names()

        client.build_path.mkdir(parents=True, exist_ok=True)
        client.static_path.mkdir(parents=True, exist_ok=True)

        reload_url = self.reload_url if self.dev else None
        (client.build_path / templates.TEMPLATE_FILE).write_text(templates.html_template(reload_url))
        (client.build_path / templates.RENDERER_FILE).write_text(templates.renderer(pages, client.source_folder))

        hydrater = client.build_path / templates.HYDRATER_FILE
        if not hydrater.exists():
            hydrater.write_text(templates.HYDRATER)

        (client.path / templates.WEBPACK_CONFIG_FILE).write_text(
            templates.webpack_config(
                pages,
                source_folder=client.source_folder,
                build_folder=client.build_folder,
                static_folder=client.static_folder,
                public_path=client.public_path,
            )
        )
        return pages

    def count_pages(self) -> int:
        """Number of HTML pages in the static output directory."""
        static = self.config.client.static_path
        if not static.is_dir():
            return 0
        return sum(1 for entry in static.iterdir() if entry.suffix == ".html")

    async def build(self) -> int:
        """Generate bundler inputs and run the bundler.

        Returns:
            Number of HTML pages produced

        Raises:
            BuildError: If a step fails
        """
        async with self._lock:
            try:
                self.scaffold_client()
                self.write_sources()
            except OSError as e:
                raise BuildError(f"error writing build files: {e}") from e

            logger.info("building pages...")
            client = self.config.client
            await self._bundle("--mode", "production")
            if (client.path / templates.SERVER_WEBPACK_CONFIG_FILE).exists():
                await self._bundle("--mode", "production", "--config", templates.SERVER_WEBPACK_CONFIG_FILE)

            count = self.count_pages()
            logger.info(f"successfully built {count} pages!")
            return count

    async def _bundle(self, *args: str) -> None:
        command = [*self.config.client.bundler, *args]
        logger.debug(f"Running {' '.join(command)} in {self.config.client.path}")
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=self.config.client.path,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise BuildError(f"error building pages: {e}") from e

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
            raise

        if process.returncode != 0:
            detail = (stderr or stdout).decode(errors="replace").strip()
            raise BuildError(f"error building pages: '{' '.join(command)}' exited with status {process.returncode}\n{detail}")
