from .api_key import ApiKey, ApiKeyCreate, ApiKeyRead, ApiKeyUsage, ApiKeyUsageRead

__all__ = ["ApiKey", "ApiKeyCreate", "ApiKeyRead", "ApiKeyUsage", "ApiKeyUsageRead"]
