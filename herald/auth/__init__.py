from herald.auth.permissions import Authorizer, Principal, RoleAuthorizer

__all__ = ["Authorizer", "Principal", "RoleAuthorizer"]
