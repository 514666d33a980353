from flask_cors import CORS

cors = CORS()


class RedisClient:
    """Lazily bound Redis connection; stays None when REDIS_URL is unset."""

    def __init__(self):
        self.client = None

    def init_app(self, app):
        import redis
        url = app.config.get('REDIS_URL')
        self.client = redis.Redis.from_url(url, decode_responses=True) if url else None

    def get(self, key):
        return self.client.get(key)

    def set(self, key, value, ex=None, nx=False):
        return self.client.set(key, value, ex=ex, nx=nx)

    def delete(self, key):
        return self.client.delete(key)


redis_client = RedisClient()
