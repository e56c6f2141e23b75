"""
Network Inventory Service - HTTP adapter and entry point.

Wraps one ScanOrchestrator behind a small JSON API so a front end can
start, cancel and watch scans without touching the scan state directly.
The same entry point can also run a single scan from the command line.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from aiohttp import web

from ._types import DeviceCategory, ReachStatus, ScanState
from .address_range import InvalidRangeFormat
from .config import ScannerConfig
from .orchestrator import ScanAlreadyRunning, ScanOrchestrator

logger = logging.getLogger(__name__)


class NetworkInventoryService:
    """
    Network inventory API service.

    Exposes scan control and the current result set over HTTP.
    """

    def __init__(self, config: ScannerConfig, orchestrator: Optional[ScanOrchestrator] = None):
        """
        Initialize the service.

        Args:
            config: Scanner configuration
            orchestrator: Pre-built orchestrator (built from config if None)
        """
        self.config = config
        self.orchestrator = orchestrator or ScanOrchestrator.from_config(config)
        self._shutdown_event = asyncio.Event()
        self._api_runner: Optional[web.AppRunner] = None

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/api/scans", self._handle_start_scan)
        app.router.add_post("/api/scans/cancel", self._handle_cancel_scan)
        app.router.add_get("/api/scans/status", self._handle_scan_status)
        app.router.add_get("/api/scans/history", self._handle_scan_history)
        app.router.add_get("/api/devices", self._handle_list_devices)
        app.router.add_get("/api/devices/{ip}", self._handle_get_device)
        app.router.add_get("/api/profiles", self._handle_list_profiles)
        app.router.add_get("/api/health", self._handle_health)
        return app

    async def start(self) -> None:
        """Start the API server and block until stop() is called."""
        logger.info("Starting Network Inventory Service")
        self._api_runner = web.AppRunner(self.create_app())
        await self._api_runner.setup()
        site = web.TCPSite(self._api_runner, self.config.api_host, self.config.api_port)
        await site.start()
        logger.info(f"API server started on {self.config.api_host}:{self.config.api_port}")

        await self._shutdown_event.wait()

    async def stop(self) -> None:
        """Cancel any running scan and stop the API server."""
        logger.info("Stopping Network Inventory Service")
        if self.orchestrator.cancel():
            await self.orchestrator.wait()
        self._shutdown_event.set()

        if self._api_runner:
            await self._api_runner.cleanup()
            self._api_runner = None

    # -------------------------------------------------------------------------
    # API Handlers
    # -------------------------------------------------------------------------

    async def _handle_start_scan(self, request: web.Request) -> web.Response:
        """Handle POST /api/scans."""
        try:
            try:
                data = await request.json() if request.body_exists else {}
            except ValueError:
                data = None
            if not isinstance(data, dict):
                return web.json_response(
                    {"status": "error", "message": "Request body must be a JSON object"},
                    status=400,
                )

            expression = data.get("range") or self.config.default_range
            if not expression:
                return web.json_response(
                    {"status": "error", "message": "No range given"},
                    status=400,
                )

            job = self.orchestrator.start(expression, data.get("profile"))
            return web.json_response(
                {"status": "started", "scan": job.to_dict()},
                status=202,
            )

        except InvalidRangeFormat as e:
            return web.json_response({"status": "error", "message": str(e)}, status=400)
        except KeyError as e:
            return web.json_response({"status": "error", "message": e.args[0]}, status=400)
        except ScanAlreadyRunning as e:
            return web.json_response({"status": "error", "message": str(e)}, status=409)
        except Exception as e:
            return web.json_response(
                {"status": "error", "message": str(e)},
                status=500,
            )

    async def _handle_cancel_scan(self, request: web.Request) -> web.Response:
        """Handle POST /api/scans/cancel."""
        if not self.orchestrator.cancel():
            return web.json_response(
                {"status": "error", "message": "No scan running"},
                status=409,
            )
        return web.json_response({"status": "cancelling"})

    async def _handle_scan_status(self, request: web.Request) -> web.Response:
        """Handle GET /api/scans/status."""
        return web.json_response(self.orchestrator.status())

    async def _handle_scan_history(self, request: web.Request) -> web.Response:
        """Handle GET /api/scans/history."""
        try:
            limit = int(request.query.get("limit", "10"))
            history = self.orchestrator.store.get_scan_history(limit=limit)

            return web.json_response({
                "history": [
                    {
                        "id": s.id,
                        "range": s.range_expression,
                        "profile": s.profile,
                        "state": s.state.value,
                        "progress": s.progress,
                        "total": s.total,
                        "started_at": s.started_at.isoformat() if s.started_at else None,
                        "completed_at": s.completed_at.isoformat() if s.completed_at else None,
                        "error_message": s.error_message,
                    }
                    for s in history
                ],
            })

        except Exception as e:
            return web.json_response(
                {"status": "error", "message": str(e)},
                status=500,
            )

    async def _handle_list_devices(self, request: web.Request) -> web.Response:
        """Handle GET /api/devices."""
        try:
            category = request.query.get("category")
            status = request.query.get("status")

            category_filter = DeviceCategory(category) if category else None
            status_filter = ReachStatus(status) if status else None

            records = [
                r for r in self.orchestrator.results()
                if (category_filter is None or r.category == category_filter)
                and (status_filter is None or r.status == status_filter)
            ]

            return web.json_response({
                "devices": [r.to_dict() for r in records],
                "total": len(records),
            })

        except ValueError as e:
            return web.json_response({"status": "error", "message": str(e)}, status=400)

    async def _handle_get_device(self, request: web.Request) -> web.Response:
        """Handle GET /api/devices/{ip}."""
        ip_address = request.match_info["ip"]
        record = self.orchestrator.context.sink.get(ip_address)
        if record is None:
            return web.json_response(
                {"status": "error", "message": "Device not found"},
                status=404,
            )
        return web.json_response({"device": record.to_dict()})

    async def _handle_list_profiles(self, request: web.Request) -> web.Response:
        """Handle GET /api/profiles."""
        return web.json_response({
            "active": self.orchestrator.default_profile,
            "profiles": {
                name: profile.sorted_ports()
                for name, profile in self.orchestrator.profiles.items()
            },
        })

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Handle GET /api/health."""
        latest = self.orchestrator.store.get_latest_scan()
        return web.json_response({
            "status": "ok",
            "service": "network-inventory",
            "devices": len(self.orchestrator.context.sink),
            "scanning": self.orchestrator.running,
            "vendors_loaded": len(self.orchestrator.vendor_db),
            "last_scan": latest.started_at.isoformat() if latest and latest.started_at else None,
        })


async def run_once(orchestrator: ScanOrchestrator, expression: str, profile: Optional[str]) -> int:
    """Run a single scan, logging each host as it completes."""
    try:
        orchestrator.start(expression, profile)
    except (InvalidRangeFormat, KeyError) as e:
        logger.error(f"Cannot start scan: {e}")
        return 2

    # Nothing has run yet: the scan task starts at the next await.
    subscription = orchestrator.subscribe()
    async for update in subscription:
        if update.record is not None:
            r = update.record
            logger.info(
                f"[{update.progress}/{update.total}] {r.ip_address} {r.status.value} "
                f"{r.category.value} {r.vendor} {r.hostname}"
            )

    job = await orchestrator.wait()
    return 0 if job and job.state == ScanState.COMPLETED else 1


def main():
    """Entry point for the network-inventory command."""
    import argparse

    parser = argparse.ArgumentParser(description="Network discovery and device inventory")
    parser.add_argument("--config", type=str, help="Path to config file")
    parser.add_argument("--range", type=str, help="Address range to scan once")
    parser.add_argument("--profile", type=str, help="Port profile name")
    parser.add_argument("--serve", action="store_true", help="Run the API server")
    parser.add_argument("--host", type=str, help="API host")
    parser.add_argument("--port", type=int, help="API port")
    parser.add_argument("--log-level", type=str, help="Log level")
    args = parser.parse_args()

    # Load configuration
    if args.config:
        config = ScannerConfig.from_yaml(Path(args.config))
    else:
        config = ScannerConfig.from_env()

    # Override with CLI args
    if args.host:
        config.api_host = args.host
    if args.port:
        config.api_port = args.port
    if args.log_level:
        config.log_level = args.log_level
    if args.profile:
        config.port_profile = args.profile
    if args.range:
        config.default_range = args.range

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    # Load credentials from separate file
    config.load_credentials()

    # Validate
    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Config error: {error}")
        sys.exit(1)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    if not args.serve:
        if not config.default_range:
            parser.error("--range is required unless --serve is given")
        orchestrator = ScanOrchestrator.from_config(config)

        def cancel_handler():
            logger.info("Received interrupt, cancelling scan")
            orchestrator.cancel()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, cancel_handler)

        try:
            exit_code = loop.run_until_complete(
                run_once(orchestrator, config.default_range, config.port_profile)
            )
        finally:
            loop.close()
        sys.exit(exit_code)

    service = NetworkInventoryService(config)

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.ensure_future(service.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    try:
        loop.run_until_complete(service.start())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        loop.run_until_complete(service.stop())
        loop.close()


if __name__ == "__main__":
    main()
