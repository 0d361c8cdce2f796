from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class PushResult:
    accepted: bool
    gateway_ref: str = None
    merchant_request_id: str = None
    description: str = ''
    raw: dict = field(default_factory=dict)


class PaymentGateway(ABC):
    @abstractmethod
    def authenticate(self, force=False) -> str:
        raise NotImplementedError

    @abstractmethod
    def push_payment(self, phone: str, amount, reference: str) -> PushResult:
        raise NotImplementedError

    @abstractmethod
    def query_push_status(self, gateway_ref: str) -> dict:
        raise NotImplementedError
