# herbchain/core/product_code.py
"""
Scannable product codes.

Current codes are compact HS256 tokens whose claims bind the batch, the
manufacturer and the generation time; verifying one recomputes the MAC over
those claims. Codes printed before signing existed look like
QR_<batchId>_<token>; they still resolve, but only as unverified.
"""

from dataclasses import dataclass
from datetime import datetime

from jose import JWTError, jwt

from herbchain.errors import IntegrityError, NotFoundError

SIGNED = "signed"
LEGACY = "legacy"
LEGACY_PREFIX = "QR_"


@dataclass(frozen=True)
class ProductCode:
    batch_id: str
    manufacturer_id: str | None
    timestamp: str | None
    format: str
    verified: bool


class ProductCodeSigner:
    def __init__(self, secret: str, algorithm: str = "HS256"):
        self._secret = secret
        self._algorithm = algorithm

    def generate(self, batch_id: str, manufacturer_id: str, timestamp: datetime) -> str:
        claims = {"bid": batch_id, "mid": manufacturer_id, "ts": timestamp.isoformat()}
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def verify(self, code: str) -> bool:
        try:
            claims = jwt.decode(code, self._secret, algorithms=[self._algorithm])
        except JWTError:
            return False
        return all(isinstance(claims.get(k), str) for k in ("bid", "mid", "ts"))

    def parse(self, code: str) -> ProductCode:
        """
        Decode either code format.

        Raises NotFoundError for strings that are not product codes at all and
        IntegrityError for signed codes whose signature does not verify.
        """
        code = code.strip()
        if code.startswith(LEGACY_PREFIX):
            parts = code.split("_")
            batch_id = "_".join(parts[1:-1])
            if len(parts) < 3 or not batch_id:
                raise NotFoundError(f"Unrecognised product code {code!r}")
            return ProductCode(batch_id, None, None, LEGACY, verified=False)

        try:
            claims = jwt.get_unverified_claims(code)
        except JWTError:
            raise NotFoundError(f"Unrecognised product code {code!r}")
        if not isinstance(claims.get("bid"), str):
            raise NotFoundError("Product code carries no batch id")
        if not self.verify(code):
            raise IntegrityError(f"Product code signature for batch {claims['bid']} does not verify")
        return ProductCode(claims["bid"], claims["mid"], claims["ts"], SIGNED, verified=True)
