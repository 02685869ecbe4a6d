import pytest

from ntpclock.clock import sntp
from ntpclock.clock.errors import NetworkError, ProtocolError, ResponseTimeout
from ntpclock.clock.sntp import LEAP, MODE, LeapVerMode, NtpMessage, RoundtripSample
from ntpclock.clock.timestamp import Instant


class TestLeapVerMode:
    def test_client_request_bits(self):
        assert LeapVerMode(leap=LEAP.NONE, mode=MODE.CLIENT).to_packed() == 0b00_011_011

    def test_unpack(self):
        lvm = LeapVerMode.from_packed(0b11_100_100)

        assert lvm == LeapVerMode(leap=LEAP.UNSYNCHRONIZED, mode=MODE.SERVER, version=4)


class TestNtpMessage:
    def test_client_request_layout(self):
        request = bytes(NtpMessage.client())

        assert len(request) == sntp.NTP_MESSAGE_LENGTH
        assert request[0] == 0b00_011_011
        assert request[1:] == bytes(47)

    def test_short_reply_is_protocol_error(self):
        with pytest.raises(ProtocolError):
            NtpMessage.from_reply(bytes(10))

    def test_long_reply_is_truncated(self):
        msg = NtpMessage.from_reply(bytes(48) + b'extension')

        assert len(bytes(msg)) == 48

    def test_timestamps(self, make_reply):
        rx = Instant(seconds=1_000_000_000, nanos=250_000_000)
        tx = Instant(seconds=1_000_000_000, nanos=750_000_000)
        msg = NtpMessage.from_reply(make_reply(rx, tx))

        assert msg.rx_time().fraction == 2 ** 30
        assert msg.tx_time().fraction == 3 * 2 ** 30

    def test_strict_check_accepts_server_reply(self, make_reply):
        NtpMessage.from_reply(make_reply(Instant(1), Instant(2))).check_server_reply()

    @pytest.mark.parametrize('lvm,stratum', [
        (0b11_011_100, 1),  # unsynchronized
        (0b00_011_011, 1),  # client mode
        (0b00_011_100, 0),  # kiss-o'-death stratum
        (0b00_011_100, 16),
    ])
    def test_strict_check_rejects(self, make_reply, lvm, stratum):
        msg = NtpMessage.from_reply(make_reply(Instant(1), Instant(2), lvm=lvm, stratum=stratum))

        with pytest.raises(ProtocolError):
            msg.check_server_reply()


class TestRoundtripSample:
    def test_delay_with_zero_server_processing(self):
        server_time = Instant(seconds=200, nanos=5)
        sample = RoundtripSample(
            t1=Instant(seconds=100), t2=server_time, t3=server_time,
            t4=Instant(seconds=100, nanos=30_000_000))

        assert sample.delay_ms == 30.0
        assert sample.offset_ms == 15.0

    def test_server_processing_is_subtracted(self):
        sample = RoundtripSample(
            t1=Instant(seconds=100), t2=Instant(seconds=100, nanos=10_000_000),
            t3=Instant(seconds=100, nanos=15_000_000), t4=Instant(seconds=100, nanos=25_000_000))

        assert sample.delay_ms == 20.0
        assert sample.offset_ms == 10.0

    def test_offset_is_never_negative(self):
        # a server clock running backwards makes the delay negative
        sample = RoundtripSample(
            t1=Instant(seconds=100), t2=Instant(seconds=100),
            t3=Instant(seconds=100, nanos=50_000_000), t4=Instant(seconds=100, nanos=10_000_000))

        assert sample.delay_ms == -40.0
        assert sample.offset_ms == 20.0

    def test_standard_offset(self):
        sample = RoundtripSample(
            t1=Instant(seconds=100), t2=Instant(seconds=105),
            t3=Instant(seconds=105), t4=Instant(seconds=100, nanos=20_000_000))

        assert sample.standard_offset_ms == pytest.approx(4_990.0)


class TestRoundtrip:
    def test_exchange(self, ntp_server, make_reply, step_clock):
        rx = Instant(seconds=1_700_000_000, nanos=1_000)
        tx = Instant(seconds=1_700_000_000, nanos=2_000)
        server = ntp_server(lambda request: make_reply(rx, tx))

        sample = sntp.roundtrip('127.0.0.1', port=server.port, now=step_clock)

        assert server.requests == [bytes(NtpMessage.client())]
        assert sample.t1 == Instant(seconds=1_700_000_000)
        assert sample.t4 == Instant(seconds=1_700_000_000, nanos=10_000_000)
        assert (sample.t2, sample.t3) == (rx, tx)
        assert sample.server == '127.0.0.1'

    def test_timeout(self, ntp_server):
        server = ntp_server(lambda request: None)

        with pytest.raises(ResponseTimeout) as excinfo:
            sntp.roundtrip('127.0.0.1', port=server.port, timeout=0.2)

        assert isinstance(excinfo.value, TimeoutError)
        assert isinstance(excinfo.value, NetworkError)

    def test_short_reply(self, ntp_server):
        server = ntp_server(lambda request: bytes(10))

        with pytest.raises(ProtocolError):
            sntp.roundtrip('127.0.0.1', port=server.port, timeout=0.5)

    def test_refused(self, closed_port):
        with pytest.raises(NetworkError):
            sntp.roundtrip('127.0.0.1', port=closed_port, timeout=0.5)

    @pytest.mark.parametrize('host', ['bad..host', 'a' * 70 + '.com'])
    def test_unencodable_host(self, host):
        with pytest.raises(NetworkError):
            sntp.roundtrip(host, timeout=0.5)

    def test_strict_rejects_client_mode_reply(self, ntp_server, make_reply):
        server = ntp_server(lambda request: make_reply(Instant(1), Instant(2), lvm=0b00_011_011))

        with pytest.raises(ProtocolError):
            sntp.roundtrip('127.0.0.1', port=server.port, timeout=0.5, strict=True)

    def test_lenient_ignores_header_fields(self, ntp_server, make_reply):
        server = ntp_server(lambda request: make_reply(Instant(1), Instant(2), lvm=0, stratum=0))

        sample = sntp.roundtrip('127.0.0.1', port=server.port, timeout=0.5)

        assert sample.t3 == Instant(2)
