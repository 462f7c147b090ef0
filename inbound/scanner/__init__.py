# Operator-side scanning: state machine, HTTP client and station
from inbound.scanner.api import InboundApi
from inbound.scanner.state import ScanPhase, ScanTask, ScannedItem
from inbound.scanner.station import ScanStation
