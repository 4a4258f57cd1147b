"""End-to-end provisioning: add a peer, ingest a client config, initialize the server"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from .config import Settings
from .exceptions import (
    DuplicatePeerName,
    InvalidPeerName,
    MissingPrerequisite,
    ProvisioningError,
    ServiceReloadFailure,
    SystemCommandError,
)
from .ipam import allocate
from .keygen import (
    KeyProvider,
    NaClKeyProvider,
    read_key,
    write_private_key,
    write_public_key,
)
from .models import KeyPair, PeerRecord, ProvisionResult, ServerInterface, Stage
from .parser import ConfigIngester, sanitize_identifier
from .prompts import InputSource, ScriptedInputSource
from .registry import PeerRegistry, atomic_write, peer_names, remove_peer, upsert
from .system import (
    Firewall,
    ServiceManager,
    ServiceReloader,
    SystemdReloader,
    SystemdServiceManager,
    UfwFirewall,
    detect_wan_interface,
)
from .templates import nat_rules, render_client_config, render_server_config


logger = logging.getLogger(__name__)


class ProvisioningWorkflow:
    """
    Orchestrates peer provisioning against one server config

    add_peer() walks NEW -> ADDRESS_ASSIGNED -> KEYS_GENERATED ->
    DOCUMENT_RENDERED -> REGISTERED -> RELOAD_REQUESTED -> DONE. REGISTERED is
    the point of no return: the server config has been committed, and a
    failed reload after it is reported on the result instead of raised.
    """

    def __init__(
        self,
        settings: Settings,
        key_provider: Optional[KeyProvider] = None,
        reloader: Optional[ServiceReloader] = None,
        input_source: Optional[InputSource] = None,
        registry: Optional[PeerRegistry] = None,
        firewall: Optional[Firewall] = None,
        service_manager: Optional[ServiceManager] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.settings = settings
        self.key_provider = key_provider or NaClKeyProvider()
        self.reloader = reloader or SystemdReloader(timeout=settings.reload_timeout)
        self.input_source = input_source or ScriptedInputSource()
        self.registry = registry or PeerRegistry(settings.registry_path)
        self.firewall = firewall or UfwFirewall()
        self.service_manager = service_manager or SystemdServiceManager()
        self.ingester = ConfigIngester()
        self.clock = clock
        self.stage = Stage.NEW

    def _advance(self, stage: Stage):
        logger.debug(f"Provisioning stage: {self.stage.value} -> {stage.value}")
        self.stage = stage

    # ---------- Add peer ----------

    def add_peer(
        self,
        name: Optional[str] = None,
        overwrite: Optional[bool] = None,
        port: Optional[int] = None,
    ) -> ProvisionResult:
        """
        Provision a new peer

        Args:
            name: Peer name; asked from the input source when None
            overwrite: Answer for an existing name; asked when None
            port: Server port for the client's Endpoint (default: server ListenPort)

        Returns:
            ProvisionResult; stage is DONE, or RELOAD_REQUESTED with
            reload_error set when the peer is registered but the reload failed

        Raises:
            MissingPrerequisite, InvalidPeerName, DuplicatePeerName, PoolExhausted
        """
        self.stage = Stage.NEW
        try:
            return self._add_peer(name, overwrite, port)
        except ProvisioningError as e:
            if e.stage is None:
                e.stage = self.stage
            logger.error(f"Provisioning failed at stage '{self.stage.value}': {e}")
            self.stage = Stage.FAILED
            raise

    def check_prerequisites(self) -> ServerInterface:
        """Server config and endpoint must exist before anything else happens"""
        server = self.registry.server_interface()

        if not self.settings.endpoint_host:
            raise MissingPrerequisite(
                "No server endpoint host configured",
                remediation=["Set server.endpoint_host in the provisioning config.yaml"],
            )

        return server

    def _add_peer(self, name: Optional[str], overwrite: Optional[bool], port: Optional[int]) -> ProvisionResult:
        self.check_prerequisites()

        if name is None:
            name = self.input_source.peer_name()

        peer_name = sanitize_identifier(name, default='')
        if not peer_name:
            raise InvalidPeerName(name)
        if peer_name != name:
            logger.warning(f"Peer name '{name}' sanitized to '{peer_name}'")

        with self.registry.transaction() as txn:
            server = self.registry.server_interface(txn.text)
            base_text = txn.text

            if peer_name in peer_names(txn.text):
                confirmed = overwrite if overwrite is not None else self.input_source.confirm_overwrite(peer_name)
                if not confirmed:
                    raise DuplicatePeerName(peer_name)
                logger.info(f"Replacing existing peer '{peer_name}'")
                base_text = remove_peer(txn.text, peer_name)

            address = allocate(self.settings.pool, base_text)
            self._advance(Stage.ADDRESS_ASSIGNED)

            keys = self.key_provider.generate()
            self._advance(Stage.KEYS_GENERATED)

            endpoint_port = port or server.listen_port or self.settings.listen_port
            client_config = render_client_config(
                peer_name=peer_name,
                address=address,
                private_key=keys.private_key,
                server_public_key=self.key_provider.derive_public(server.private_key),
                server_endpoint=f"{self.settings.endpoint_host}:{endpoint_port}",
                dns=self.settings.dns,
                allowed_ips=self.settings.allowed_ips,
                persistent_keepalive=self.settings.persistent_keepalive,
            )
            self._advance(Stage.DOCUMENT_RENDERED)

            # Client files first: a registered peer must never lose its private key
            config_path = self.save_client_files(peer_name, client_config, keys)

            record = PeerRecord(
                name=peer_name,
                public_key=keys.public_key,
                address=address,
                created_at=self.clock(),
            )
            txn.text = upsert(base_text, record)
            txn.commit()
            self._advance(Stage.REGISTERED)

        logger.info(f"Registered peer '{peer_name}' at {address}")

        self._advance(Stage.RELOAD_REQUESTED)
        # Past REGISTERED every reload error is reported on the result, never raised
        try:
            self.reloader.reload(self.settings.interface)
        except Exception as e:
            error = e if isinstance(e, ServiceReloadFailure) else ServiceReloadFailure(self.settings.interface, str(e))
            error.stage = Stage.RELOAD_REQUESTED
            logger.warning(f"Peer '{peer_name}' is registered but the reload failed: {error.detail}")
            return ProvisionResult(
                record=record,
                client_config=client_config,
                stage=self.stage,
                client_config_path=config_path,
                reload_error=error,
            )

        self._advance(Stage.DONE)
        return ProvisionResult(
            record=record,
            client_config=client_config,
            stage=self.stage,
            client_config_path=config_path,
        )

    def save_client_files(self, name: str, client_config: str, keys: KeyPair) -> Path:
        """
        Save the client config and its keys under clients_dir

        Returns:
            Path to the client config (600)
        """
        clients_dir = self.settings.clients_dir
        clients_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(clients_dir, 0o700)

        config_path = clients_dir / f"{name}.conf"
        atomic_write(config_path, client_config, mode=0o600)
        write_private_key(clients_dir / f"{name}_private.key", keys.private_key)
        write_public_key(clients_dir / f"{name}_public.key", keys.public_key)

        logger.info(f"Saved client config to {config_path}")
        return config_path

    # ---------- Ingest client config ----------

    def ingest_client_config(
        self,
        raw_text: Optional[str] = None,
        name: Optional[str] = None,
        overwrite: Optional[bool] = None,
        bring_up: Optional[bool] = None,
    ) -> Path:
        """
        Validate a pasted client config and install it as <config_dir>/<name>.conf

        Args:
            raw_text: Config text; read from the input source when None
            name: Interface name overriding the one in the config comment
            overwrite: Answer for an existing file; asked when None
            bring_up: Run 'wg-quick up' afterwards; asked when None

        Returns:
            Path of the installed config

        Raises:
            InvalidConfig: nothing is written
            DuplicatePeerName: file exists and overwrite was refused
            ProvisioningError: the name is the server config and it has registered peers
            ServiceReloadFailure: config installed but the interface did not come up
        """
        if raw_text is None:
            raw_text = self.input_source.config_text()

        ingested = self.ingester.parse(raw_text, name=name)
        path = self.settings.config_dir / f"{ingested.name}.conf"

        if path == self.registry.path:
            # Same file as the server config: serialize with add-peer runs
            with self.registry.lock():
                if self.registry.exists() and peer_names(self.registry.read()):
                    raise ProvisioningError(
                        f"{path} is the server config with registered peers; not overwritten",
                        remediation=["Install the client config under another name with --name"],
                    )
                self._install_client_config(path, ingested.name, ingested.text, overwrite)
        else:
            self._install_client_config(path, ingested.name, ingested.text, overwrite)

        if bring_up is None:
            bring_up = self.input_source.confirm_bring_up(ingested.name)
        if bring_up:
            self.reloader.bring_up(ingested.name)

        return path

    def _install_client_config(self, path: Path, name: str, text: str, overwrite: Optional[bool]):
        if path.exists():
            confirmed = overwrite if overwrite is not None else self.input_source.confirm_overwrite(name)
            if not confirmed:
                raise DuplicatePeerName(name)
            logger.warning(f"Overwriting {path}")

        atomic_write(path, text, mode=0o600)
        logger.info(f"Saved client config to {path}")

    # ---------- Server bootstrap ----------

    def load_or_create_server_keys(self) -> KeyPair:
        """
        Server keypair, generated on first use

        An existing server config is authoritative: its PrivateKey is the
        server key and the key files are rewritten to match it. Otherwise the
        key files in config_dir are used, and only when neither exists is a
        new keypair generated.
        """
        private_path = self.settings.server_private_key_path
        public_path = self.settings.server_public_key_path

        if self.registry.exists():
            private_key = self.registry.server_interface().private_key
            if not private_path.exists() or read_key(private_path) != private_key:
                logger.warning(f"Rewriting {private_path} from the server config {self.registry.path}")
                write_private_key(private_path, private_key)
        elif private_path.exists():
            private_key = read_key(private_path)
        else:
            keys = self.key_provider.generate()
            write_private_key(private_path, keys.private_key)
            write_public_key(public_path, keys.public_key)
            logger.info(f"Generated server keys in {self.settings.config_dir}")
            return keys

        public_key = self.key_provider.derive_public(private_key)
        if not public_path.exists() or read_key(public_path) != public_key:
            logger.warning(f"Rewriting {public_path} from the server private key")
            write_public_key(public_path, public_key)
        else:
            logger.info("Server keys already exist, not overwritten")
        return KeyPair(private_key=private_key, public_key=public_key)

    def initialize_server(self, port: Optional[int] = None, wan_interface: Optional[str] = None) -> ServerInterface:
        """
        Create server keys and the initial server config, open the port and enable the service

        An existing server config is never overwritten. Firewall and service
        manager failures are logged as warnings; the config is already in place.

        Returns:
            The server's interface parameters
        """
        keys = self.load_or_create_server_keys()

        with self.registry.lock():
            if self.registry.exists():
                logger.warning(f"Server config already exists: {self.registry.path}; not overwritten")
                server = self.registry.server_interface()
            else:
                listen_port = port or self.input_source.listen_port(self.settings.listen_port)
                post_up: List[str] = []
                post_down: List[str] = []
                try:
                    wan = wan_interface or detect_wan_interface()
                    rule_up, rule_down = nat_rules(self.settings.interface, wan)
                    post_up.append(rule_up)
                    post_down.append(rule_down)
                    logger.info(f"Main network interface: {wan}")
                except SystemCommandError as e:
                    logger.warning(f"No NAT rules added: {e}")

                server = ServerInterface(
                    address=self.settings.server_address,
                    listen_port=listen_port,
                    private_key=keys.private_key,
                    post_up=post_up,
                    post_down=post_down,
                )
                self.registry.commit(render_server_config(server))

        try:
            self.firewall.allow_udp(server.listen_port)
        except SystemCommandError as e:
            logger.warning(f"Could not open {server.listen_port}/udp: {e}")

        try:
            self.service_manager.enable(self.settings.interface)
        except SystemCommandError as e:
            logger.warning(f"Could not enable wg-quick@{self.settings.interface}: {e}")

        return server

    def server_public_key(self) -> str:
        return self.key_provider.derive_public(self.registry.server_interface().private_key)

    def list_peers(self) -> List[PeerRecord]:
        return self.registry.peers()
