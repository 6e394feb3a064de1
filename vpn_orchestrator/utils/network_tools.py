"""
Network lookups used for display only
"""

import ipaddress
import time
import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)

FLAG_CDN = 'https://flagcdn.com'
DEFAULT_COUNTRY_CODE = 'us'

COUNTRY_CODES = {
    'united states': 'us', 'usa': 'us', 'united kingdom': 'gb', 'uk': 'gb',
    'germany': 'de', 'france': 'fr', 'netherlands': 'nl', 'spain': 'es',
    'italy': 'it', 'canada': 'ca', 'australia': 'au', 'japan': 'jp',
    'singapore': 'sg', 'india': 'in', 'brazil': 'br', 'mexico': 'mx',
    'sweden': 'se', 'norway': 'no', 'denmark': 'dk', 'finland': 'fi',
    'poland': 'pl', 'switzerland': 'ch', 'austria': 'at', 'belgium': 'be',
    'czech republic': 'cz', 'ireland': 'ie', 'portugal': 'pt', 'greece': 'gr',
    'hong kong': 'hk', 'south korea': 'kr', 'taiwan': 'tw', 'israel': 'il',
    'south africa': 'za', 'new zealand': 'nz', 'argentina': 'ar', 'chile': 'cl',
    'colombia': 'co', 'turkey': 'tr', 'russia': 'ru', 'ukraine': 'ua',
    'romania': 'ro', 'bulgaria': 'bg', 'hungary': 'hu',
}


def country_code_for(country_code: Optional[str],
                     country_name: Optional[str] = None) -> str:
    """ISO code for the flag CDN, falling back to the default code"""
    if country_code and len(country_code.strip()) == 2:
        return country_code.strip().lower()
    return COUNTRY_CODES.get((country_name or '').strip().lower(), DEFAULT_COUNTRY_CODE)


def flag_url(country_code: Optional[str], country_name: Optional[str] = None,
             width: int = 40) -> str:
    return f"{FLAG_CDN}/w{width}/{country_code_for(country_code, country_name)}.png"


class NetworkTools:
    """Public IP lookup"""

    def __init__(self, timeout: float = 5):
        self.timeout = timeout
        self._public_ip_cache = None
        self._cache_time = 0
        self.cache_duration = 300  # 5 minutes

    def get_public_ip(self, force_refresh: bool = False) -> Optional[str]:
        """Get current public IP address"""
        current_time = time.time()

        if (not force_refresh and self._public_ip_cache and
                current_time - self._cache_time < self.cache_duration):
            return self._public_ip_cache

        try:
            response = requests.get(
                'https://api.ipify.org', params={'format': 'json'},
                timeout=self.timeout
            )
            response.raise_for_status()
            ip = response.json().get('ip', '')
        except (requests.RequestException, ValueError) as e:
            logger.debug(f"Public IP lookup failed: {e}")
            return None

        if not self._is_valid_ip(ip):
            return None

        self._public_ip_cache = ip
        self._cache_time = current_time
        return ip

    @staticmethod
    def _is_valid_ip(value: str) -> bool:
        try:
            ipaddress.ip_address(value)
            return True
        except ValueError:
            return False
