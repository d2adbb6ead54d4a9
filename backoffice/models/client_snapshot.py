"""Client snapshot embedded in quotes and invoices."""
from dataclasses import dataclass, asdict
from typing import Optional


@dataclass(frozen=True)
class ClientSnapshot:
    """
    Client details copied onto a document at creation time.

    Mapped with sqlalchemy.orm.composite() onto the client_* columns of
    Quote and Invoice, so a historical document keeps showing the client as
    it was when the document was issued.
    """

    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    def __composite_values__(self):
        return (self.name, self.address, self.city, self.country, self.email, self.phone)

    @classmethod
    def from_payload(cls, data: dict, default_country: Optional[str] = None) -> 'ClientSnapshot':
        """
        Build a snapshot from request data.

        Accepts either a nested ``client`` dict or flat ``client_*`` keys.
        Blank strings are stored as NULL.
        """
        source = data.get('client') if isinstance(data.get('client'), dict) else {
            key[len('client_'):]: value for key, value in data.items() if key.startswith('client_')
        }

        def clean(key):
            value = source.get(key)
            if value is None:
                return None
            value = str(value).strip()
            return value or None

        return cls(
            name=clean('name') or '',
            address=clean('address'),
            city=clean('city'),
            country=clean('country') or default_country,
            email=clean('email'),
            phone=clean('phone'),
        )

    def merge(self, changes: dict) -> 'ClientSnapshot':
        """Return a new snapshot with the given fields replaced."""
        values = asdict(self)
        for key, value in changes.items():
            if key in values:
                value = str(value).strip() if value is not None else None
                values[key] = value or None
        values['name'] = values['name'] or ''
        return ClientSnapshot(**values)

    def to_dict(self):
        return asdict(self)
