from typing import Annotated
from pydantic import PlainSerializer

# Amounts are kept exact in computation and rounded only when rendered
Money = Annotated[float, PlainSerializer(lambda v: round(v, 2), return_type=float)]
Hours = Annotated[float, PlainSerializer(lambda v: round(v, 4), return_type=float)]
