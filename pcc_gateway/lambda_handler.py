"""AWS Lambda entry point.

Mangum translates API Gateway HTTP API (v2) events into ASGI. Lambda
instances do not share memory, so deploy with RATE_LIMIT_BACKEND=redis.
"""

from mangum import Mangum

from pcc_gateway.main import app

handler = Mangum(app, lifespan="off")
