"""
Bearer token 认证。

前端把 token 存在 localStorage，每个请求带
  Authorization: Bearer <token>
DRF 自带的 TokenAuthentication 只认 "Token" 前缀，这里换成 "Bearer"。
"""

from rest_framework.authentication import TokenAuthentication


class BearerTokenAuthentication(TokenAuthentication):
    keyword = 'Bearer'
