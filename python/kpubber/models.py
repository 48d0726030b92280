from typing import NamedTuple

INTERNAL_IP = "InternalIP"
EXTERNAL_IP = "ExternalIP"
HOSTNAME = "Hostname"
INTERNAL_DNS = "InternalDNS"
EXTERNAL_DNS = "ExternalDNS"


class IPAddress(str):
    """Textual IP address as handed out by the resolver.

    Compared as a plain string, no canonicalisation of IPv6 forms.
    """

    def __new__(cls, value: str):
        value = value.strip()
        if not value:
            raise ValueError("IP address must not be empty")
        return super().__new__(cls, value)


class NodeAddress(NamedTuple):
    type: str
    address: str

    @classmethod
    def from_dict(cls, raw: dict) -> "NodeAddress":
        return cls(raw["type"], raw["address"])

    def to_dict(self) -> dict:
        return {"type": self.type, "address": self.address}
