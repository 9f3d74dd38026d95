from pydantic import BeforeValidator
from decimal import Decimal
from typing import Annotated
from utils import to_decimal

# Decimal128 from MongoDB, or numbers/strings from requests
Money = Annotated[Decimal, BeforeValidator(to_decimal)]
