import hashlib
import secrets
from typing import Optional


def generate_code(alphabet: str, length: int) -> str:
    """암호학적으로 안전한 난수로 코드 생성"""
    return "".join(secrets.choice(alphabet) for _ in range(length))


def normalize_code(raw: str) -> str:
    return raw.strip().upper()


def hash_ip(ip: Optional[str], salt: str) -> Optional[str]:
    """IP는 원문 저장하지 않고 salt를 섞은 sha256 해시로만 보관"""
    if not ip:
        return None
    return hashlib.sha256(f"{salt}:{ip}".encode("utf-8")).hexdigest()[:32]
