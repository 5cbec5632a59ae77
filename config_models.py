from dataclasses import dataclass


@dataclass
class AppConfig:
    name: str
    secret_key: str
    currency: str
    default_region: str
    donation_city: str
