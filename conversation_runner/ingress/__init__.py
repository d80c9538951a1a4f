from .http_api import HttpIngress
from .oneshot import OneShotAdapter
from .sip_inbound import SipInboundAdapter

__all__ = ['HttpIngress', 'OneShotAdapter', 'SipInboundAdapter']
