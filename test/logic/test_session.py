import io
import threading

import pytest
from loguru import logger

from arraysim.device import MockDeviceEmulator
from arraysim.device.mock import RX_RECORD_SIZE, TX_RECORD_SIZE, TxCommand, TAG_FIRM_INFO
from arraysim.server.codec import encode_request, read_response
from arraysim.server.session import ConnectionSession, ConnectionState
from arraysim.sim import LinkContext, Simulator
from arraysim.types import (
    MAGIC,
    PROTOCOL_VERSION,
    CloseRequest,
    ConfigureGeometryRequest,
    ConnectionProtocol,
    ErrorResponse,
    Geometry,
    HandshakeRequest,
    OkResponse,
    ReadRequest,
    ReadResponse,
    SendRequest,
    TransportError,
    UpdateGeometryRequest,
)


class MemoryConnection:
    """In-memory connection fed with a fixed request stream."""

    def __init__(self, *requests):
        self.incoming = bytearray(
            b"".join(
                r if isinstance(r, bytes) else encode_request(r, TX_RECORD_SIZE)
                for r in requests
            )
        )
        self.written = bytearray()
        self.closed = 0

    async def read_exact(self, n: int) -> bytes:
        if len(self.incoming) < n:
            self.incoming.clear()
            raise TransportError("peer closed")
        out = bytes(self.incoming[:n])
        del self.incoming[:n]
        return out

    async def write(self, data: bytes) -> None:
        self.written += data

    async def close(self) -> None:
        self.closed += 1

    def responses(self, *reads: bool):
        """Decode written frames; True marks a reply to a Read."""
        buf = io.BytesIO(bytes(self.written))
        out = [read_response(buf.read, RX_RECORD_SIZE if r else None) for r in reads]
        assert buf.read() == b"", "unexpected trailing response bytes"
        return out


HELLO = HandshakeRequest()


@pytest.fixture
def simulator():
    emulator = MockDeviceEmulator()
    context = LinkContext.for_emulator(emulator, ack_timeout=5.0)
    sim = Simulator(context, emulator)
    stop = threading.Event()
    thread = threading.Thread(target=sim.run, args=(stop,), daemon=True)
    thread.start()
    yield sim
    stop.set()
    thread.join(timeout=5)


@pytest.fixture(autouse=True)
def log(request):
    logger.info("STARTED Test '{}'", request.node.originalname)
    yield
    logger.info("COMPLETED Test '{}'", request.node.originalname)


async def run_session(context, *requests):
    conn = MemoryConnection(*requests)
    assert isinstance(conn, ConnectionProtocol)
    session = ConnectionSession(conn, context, peer="test")
    await session.run()
    return session, conn


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_full_exchange(self, simulator):
        cmds = (
            TxCommand(msg_id=9, tag=TAG_FIRM_INFO).to_bytes(),
            TxCommand(msg_id=10).to_bytes(),
        )
        session, conn = await run_session(
            simulator.context,
            HELLO,
            ConfigureGeometryRequest(geometry=Geometry.identity(2)),
            ReadRequest(),
            SendRequest(commands=cmds),
            ReadRequest(),
            CloseRequest(),
        )
        ok1, ok2, read1, ok3, read2, ok4 = conn.responses(
            False, False, True, False, True, False
        )
        assert all(isinstance(r, OkResponse) for r in (ok1, ok2, ok3, ok4))
        assert read1.statuses == (b"\x00\x00", b"\x00\x00")
        # acknowledged Send is visible to the next Read on the same connection
        assert read2.statuses == (b"\x0a\x09", b"\x00\x0a")
        assert session.state is ConnectionState.CLOSED
        assert session.device_count == 2
        assert conn.closed == 1
        assert simulator.geometry is None

    @pytest.mark.asyncio
    async def test_update_geometry(self, simulator):
        await run_session(
            simulator.context,
            HELLO,
            ConfigureGeometryRequest(geometry=Geometry.identity(2)),
            UpdateGeometryRequest(geometry=Geometry.identity(2, spacing=5.0)),
        )
        assert simulator.geometry[1].position == (5.0, 0.0, 0.0)

    @pytest.mark.asyncio
    async def test_read_before_configure_is_empty(self, simulator):
        _, conn = await run_session(simulator.context, HELLO, ReadRequest())
        _, read = conn.responses(False, True)
        assert read.statuses == ()

    @pytest.mark.asyncio
    async def test_peer_hangup_ends_silently(self, simulator):
        session, conn = await run_session(simulator.context, HELLO)
        assert len(conn.responses(False)) == 1
        assert session.state is ConnectionState.CLOSED
        assert conn.closed == 1

    @pytest.mark.asyncio
    async def test_truncated_frame_gets_no_reply(self, simulator):
        frame = encode_request(ConfigureGeometryRequest(geometry=Geometry.identity(2)))
        _, conn = await run_session(simulator.context, HELLO, frame[:-5])
        conn.responses(False)
        assert simulator.geometry is None


class TestHandshake:
    @pytest.mark.asyncio
    async def test_command_before_handshake(self, simulator):
        session, conn = await run_session(
            simulator.context,
            ConfigureGeometryRequest(geometry=Geometry.identity(2)),
            HELLO,
        )
        (err,) = conn.responses(False)
        assert isinstance(err, ErrorResponse)
        assert "Handshake required" in err.value
        # connection dropped: the trailing handshake was never read
        assert bytes(conn.incoming) == encode_request(HELLO)
        assert session.state is ConnectionState.CLOSED
        assert simulator.geometry is None
        assert simulator.signals_applied == 0

    @pytest.mark.asyncio
    async def test_bad_magic_then_retry(self, simulator):
        session, conn = await run_session(
            simulator.context,
            HandshakeRequest(magic=b"NOTARRAYSIM"),
            HELLO,
            ReadRequest(),
        )
        err, ok, read = conn.responses(False, False, True)
        assert isinstance(err, ErrorResponse) and "magic" in err.value
        assert isinstance(ok, OkResponse)
        assert isinstance(read, ReadResponse)

    @pytest.mark.asyncio
    async def test_bad_version_stays_unauthenticated(self, simulator):
        session = ConnectionSession(
            MemoryConnection(), simulator.context, peer="test"
        )
        frame = await session.handle(HandshakeRequest(version=PROTOCOL_VERSION + 1))
        assert frame[0] == 0xFF
        assert session.state is ConnectionState.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_too_many_attempts(self, simulator):
        bad = HandshakeRequest(version=99, magic=MAGIC)
        session, conn = await run_session(simulator.context, bad, bad, bad, HELLO)
        responses = conn.responses(False, False, False)
        assert all(isinstance(r, ErrorResponse) for r in responses)
        assert "giving up" in responses[-1].value
        assert bytes(conn.incoming) == encode_request(HELLO)
        assert session.handshake_attempts == 3

    @pytest.mark.asyncio
    async def test_second_handshake(self, simulator):
        _, conn = await run_session(simulator.context, HELLO, HELLO, ReadRequest())
        ok, err = conn.responses(False, False)
        assert isinstance(ok, OkResponse)
        assert "already" in err.value


class TestErrors:
    @pytest.mark.asyncio
    async def test_unknown_message_type(self, simulator):
        _, conn = await run_session(simulator.context, HELLO, b"\x7f", ReadRequest())
        _, err = conn.responses(False, False)
        assert "0x7F" in err.value
        assert bytes(conn.incoming) == b"\x04"

    @pytest.mark.asyncio
    async def test_update_count_mismatch(self, simulator):
        _, conn = await run_session(
            simulator.context,
            HELLO,
            ConfigureGeometryRequest(geometry=Geometry.identity(2)),
            UpdateGeometryRequest(geometry=Geometry.identity(3)),
        )
        _, _, err = conn.responses(False, False, False)
        assert isinstance(err, ErrorResponse)
        assert simulator.geometry.num_devices == 2

    @pytest.mark.asyncio
    async def test_send_count_mismatch(self, simulator):
        _, conn = await run_session(
            simulator.context,
            HELLO,
            ConfigureGeometryRequest(geometry=Geometry.identity(2)),
            SendRequest(commands=(bytes(TX_RECORD_SIZE),)),
        )
        _, _, err = conn.responses(False, False, False)
        assert "1 records" in err.value
        assert simulator.context.relay.take() is None

    @pytest.mark.asyncio
    async def test_too_many_devices(self, simulator):
        simulator.context.max_devices = 1
        _, conn = await run_session(
            simulator.context,
            HELLO,
            ConfigureGeometryRequest(geometry=Geometry.identity(2)),
        )
        _, err = conn.responses(False, False)
        assert "exceeds" in err.value
        assert simulator.signals_applied == 0

    @pytest.mark.asyncio
    async def test_simulator_closed(self):
        emulator = MockDeviceEmulator()
        context = LinkContext.for_emulator(emulator)
        context.channel.close()
        _, conn = await run_session(
            context, HELLO, ConfigureGeometryRequest(geometry=Geometry.identity(1))
        )
        _, err = conn.responses(False, False)
        assert err.value == "Simulator is closed"

    @pytest.mark.asyncio
    async def test_simulator_not_responding(self):
        emulator = MockDeviceEmulator()
        context = LinkContext.for_emulator(emulator, ack_timeout=0.05)
        _, conn = await run_session(
            context, HELLO, ConfigureGeometryRequest(geometry=Geometry.identity(1))
        )
        _, err = conn.responses(False, False)
        assert "did not apply" in err.value
