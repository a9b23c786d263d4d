# LinkWatch - Main Entry Point
# Keeps a heartbeat-verified serial link open and reports when it dies

"""
LinkWatch - Application wiring

Connects the layers into a running process:
SerialTransport → SerialDevice (handshake + heartbeat) → callbacks

Behaviour:
- Opens the configured serial port and verifies the remote answers ping
- Logs every application line the device sends
- Logs link statistics periodically
- Exits when the link disconnects or on SIGINT/SIGTERM (no auto-retry)
"""

import asyncio
import os
import signal
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

from linkwatch.connection.errors import LinkError
from linkwatch.connection.serial_device import SerialDevice
from linkwatch.connection.serial_transport import SerialTransport
from linkwatch.utils.logger import configure_defaults, setup_logger

PROJECT_ROOT = Path(__file__).parent

# Global flag for shutdown
shutdown_event = asyncio.Event()

DEFAULT_CONFIG = {
    'serial': {
        'port': '/dev/ttyUSB0',
        'baudrate': 9600,
        'read_timeout': 0.5
    },
    'heartbeat': {
        'ping_interval_ms': 30000,
        'ping_timeout_ms': 10000
    },
    'logging': {
        'level': 'INFO',
        'file': 'logs/linkwatch.log'
    },
    'stats': {
        'interval_seconds': 300
    }
}

class LinkWatch:
    """
    Main application class - owns the device and reacts to its events
    """

    def __init__(self, config: dict):
        """Initialize transport and device from config"""
        self.config = config
        self.logger = setup_logger("LinkWatch")

        serial_config = config.get('serial', {})
        heartbeat_config = config.get('heartbeat', {})

        self.transport = SerialTransport(
            port=serial_config.get('port'),
            baudrate=serial_config.get('baudrate', 9600),
            read_timeout=serial_config.get('read_timeout', 0.5)
        )
        self.device = SerialDevice(
            self.transport,
            ping_interval_ms=heartbeat_config.get('ping_interval_ms', 30000),
            ping_timeout_ms=heartbeat_config.get('ping_timeout_ms', 10000)
        )
        self.device.on_disconnect(self.on_disconnect)
        self.device.on_message(self.on_message)

        self.stats_interval = config.get('stats', {}).get('interval_seconds', 300)
        self._stats_task: Optional[asyncio.Task] = None

    def on_disconnect(self):
        """Called when the verified link closes"""
        self.logger.warning("🔌 Device disconnected")
        shutdown_event.set()

    def on_message(self, line: str):
        """Called for every application line from the device"""
        self.logger.info(f"📨 {line}")

    async def _stats_loop(self):
        """Background task logging link statistics"""
        try:
            while True:
                await asyncio.sleep(self.stats_interval)
                self.logger.info(f"📊 Link stats: {self.device.get_stats()}")
        except asyncio.CancelledError:
            self.logger.debug("Stats loop cancelled")
            raise

    async def run(self) -> bool:
        """
        Connect and run until shutdown

        Returns:
            True if the link was established, False otherwise
        """
        port = self.config.get('serial', {}).get('port')
        self.logger.info(f"Connecting to {port}...")
        try:
            await self.device.connect()
        except LinkError as e:
            self.logger.error(f"❌ Connection failed: {e}")
            self.device.close()
            return False

        self.logger.info("✅ Link established")
        self._stats_task = asyncio.create_task(self._stats_loop())

        try:
            await shutdown_event.wait()
        finally:
            await self.stop()
        return True

    async def stop(self):
        """Stop background work and close the link"""
        if self._stats_task and not self._stats_task.done():
            self._stats_task.cancel()
            try:
                await self._stats_task
            except asyncio.CancelledError:
                pass
        self._stats_task = None

        if self.transport.is_open():
            self.device.close()
        self.logger.info(f"Final link stats: {self.device.get_stats()}")

def validate_config(config: dict) -> tuple:
    """
    Validate configuration structure

    Returns:
        (is_valid, list of error messages)
    """
    errors = []

    if not config.get('serial', {}).get('port'):
        errors.append("Config error: serial.port must be set")

    numeric_checks = [
        ('serial.baudrate', config.get('serial', {}).get('baudrate')),
        ('serial.read_timeout', config.get('serial', {}).get('read_timeout')),
        ('heartbeat.ping_interval_ms', config.get('heartbeat', {}).get('ping_interval_ms')),
        ('heartbeat.ping_timeout_ms', config.get('heartbeat', {}).get('ping_timeout_ms')),
        ('stats.interval_seconds', config.get('stats', {}).get('interval_seconds')),
    ]

    for key, value in numeric_checks:
        if value is not None and (
            isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0
        ):
            errors.append(f"Config error: {key} must be a positive number")

    return (len(errors) == 0, errors)

def load_config(config_path: Path = None, env_path: Path = None) -> dict:
    """
    Load configuration from files

    config.yaml provides the settings; local.env and the environment
    override the port, baud rate and log level.
    """
    config_path = config_path or PROJECT_ROOT / "config" / "config.yaml"
    env_path = env_path or PROJECT_ROOT / "config" / "local.env"
    load_dotenv(env_path)

    config = {section: dict(values) for section, values in DEFAULT_CONFIG.items()}
    if config_path.exists():
        with open(config_path) as f:
            loaded = yaml.safe_load(f) or {}
        for section, values in loaded.items():
            if isinstance(values, dict):
                config.setdefault(section, {}).update(values)
            else:
                config[section] = values

    if os.getenv('LINKWATCH_SERIAL_PORT'):
        config['serial']['port'] = os.getenv('LINKWATCH_SERIAL_PORT')
    if os.getenv('LINKWATCH_BAUDRATE'):
        config['serial']['baudrate'] = int(os.getenv('LINKWATCH_BAUDRATE'))
    if os.getenv('LINKWATCH_LOG_LEVEL'):
        config['logging']['level'] = os.getenv('LINKWATCH_LOG_LEVEL')

    return config

def handle_shutdown(signum=None, frame=None):
    """Handle shutdown signals"""
    print("\n🛑 Received shutdown signal")
    shutdown_event.set()

async def main():
    """Main entry point"""
    config = load_config()
    logging_config = config.get('logging', {})
    configure_defaults(logging_config.get('level', 'INFO'), logging_config.get('file'))
    logger = setup_logger("Main")

    try:
        is_valid, errors = validate_config(config)
        if not is_valid:
            logger.error("❌ Configuration validation failed:")
            for error in errors:
                logger.error(f"  - {error}")
            return

        app = LinkWatch(config)
        await app.run()

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        raise

if __name__ == "__main__":
    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
