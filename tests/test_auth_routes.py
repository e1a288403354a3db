"""
tests/test_auth_routes.py -- Integration tests for /api/v1/auth/*.

These tests exercise the full stack: FastAPI routing -> request validation ->
session cookie gate -> capability checks -> AuthStore -> error handlers.

Coverage:
  - Login: cookie attributes, remember-me, each identifier, every failure message
  - Login then gate round-trip yields the same {uuid, authUuid}
  - Logout clears the browser cookie but a copied token keeps working
  - GET /auth/check: first missing capability named with its label
  - Role CRUD: admin only, default role immutable, dependents block delete,
    rejected requests leave the role table unchanged
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from auth.models import User
from auth.tokens import create_session_token, decode_session_token, hash_password
from conftest import ADMIN_PASSWORD, ADMIN_ROLE, INACTIVE_PASSWORD, INTERN_ROLE, ApiContext

_LOGIN = "/api/v1/auth/login"
_MISSING_UUID = "00000000-0000-4000-8000-000000000000"


def _as(token: str) -> dict[str, str]:
    return {"token": token}


def _role_snapshot(ctx: ApiContext) -> list:
    return [(r.uuid, r.name, r.admin, r.project, r.personal, r.financial) for r in ctx.store.list_roles()]


class TestLogin:
    def test_login_by_email_sets_session_cookie(self, client: TestClient, api_context: ApiContext) -> None:
        resp = client.post(_LOGIN, json={"email": "admin@empresa.com.br", "password": ADMIN_PASSWORD})
        assert resp.status_code == 201, resp.text
        assert resp.json() == {"message": "Logado com sucesso."}
        header = resp.headers["set-cookie"].lower()
        for attribute in ("httponly", "secure", "samesite=none", "path=/"):
            assert attribute in header
        assert "max-age" not in header

    def test_login_remember_me(self, client: TestClient) -> None:
        body = {"email": "admin@empresa.com.br", "password": ADMIN_PASSWORD, "rememberMe": True}
        resp = client.post(_LOGIN, json=body)
        assert resp.status_code == 201
        assert "max-age=604800" in resp.headers["set-cookie"].lower()

    def test_login_by_cpf_and_username(self, client: TestClient) -> None:
        by_cpf = client.post(_LOGIN, json={"cpf": "111.222.333-44", "password": ADMIN_PASSWORD})
        by_username = client.post(_LOGIN, json={"username": "admin", "password": ADMIN_PASSWORD})
        assert by_cpf.status_code == 201
        assert by_username.status_code == 201

    def test_issued_token_decodes_to_user_and_role(self, client: TestClient, api_context: ApiContext) -> None:
        resp = client.post(_LOGIN, json={"email": "admin@empresa.com.br", "password": ADMIN_PASSWORD})
        claims = decode_session_token(resp.cookies["token"])
        assert claims.uuid == api_context.admin.uuid
        assert claims.auth_uuid == ADMIN_ROLE.uuid

    def test_cookie_jar_session_passes_gate(self, client: TestClient) -> None:
        client.post(_LOGIN, json={"username": "admin", "password": ADMIN_PASSWORD})
        assert client.get("/api/v1/auth/check", params={"admin": "true"}).status_code == 200

    def test_unknown_email(self, client: TestClient) -> None:
        resp = client.post(_LOGIN, json={"email": "a@b.com", "password": "Abcd123!"})
        assert resp.status_code == 401
        assert resp.json() == {"message": "Usuário não cadastrado!"}
        assert "set-cookie" not in resp.headers

    def test_inactive_user_even_with_right_password(self, client: TestClient) -> None:
        resp = client.post(_LOGIN, json={"email": "inativo@empresa.com.br", "password": INACTIVE_PASSWORD})
        assert resp.status_code == 401
        assert resp.json() == {"message": "Usuário inativo!"}

    def test_wrong_password(self, client: TestClient) -> None:
        resp = client.post(_LOGIN, json={"email": "admin@empresa.com.br", "password": "Errada123!"})
        assert resp.status_code == 401
        assert resp.json() == {"message": "Senha incorreta!"}

    def test_missing_identifier(self, client: TestClient) -> None:
        resp = client.post(_LOGIN, json={"password": ADMIN_PASSWORD})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Informe um cpf ou email ou nome de usuário válido!"

    def test_weak_password_rejected_before_lookup(self, client: TestClient) -> None:
        resp = client.post(_LOGIN, json={"email": "admin@empresa.com.br", "password": "abcdefgh"})
        assert resp.status_code == 401
        data = resp.json()
        assert data["message"] == "Informe uma senha válida!"
        assert data["errors"][0]["field"] == "password"

    def test_malformed_cpf(self, client: TestClient) -> None:
        resp = client.post(_LOGIN, json={"cpf": "11122233344", "password": ADMIN_PASSWORD})
        assert resp.status_code == 401
        assert resp.json()["errors"][0]["field"] == "cpf"

    def test_cpf_with_trailing_newline(self, client: TestClient) -> None:
        resp = client.post(_LOGIN, json={"cpf": "111.222.333-44\n", "password": ADMIN_PASSWORD})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Informe um cpf válido!"

    def test_accented_password(self, client: TestClient, api_context: ApiContext) -> None:
        user = User(
            username="joao",
            email="joao@empresa.com.br",
            hashed_password=hash_password("Coração1!"),
            auth_uuid=ADMIN_ROLE.uuid,
        )
        api_context.store.create_user(user)
        resp = client.post(_LOGIN, json={"email": "joao@empresa.com.br", "password": "Coração1!"})
        assert resp.status_code == 201, resp.text


class TestLogout:
    def test_logout_clears_cookie(self, client: TestClient, api_context: ApiContext) -> None:
        resp = client.post("/api/v1/auth/logout", cookies=_as(api_context.admin_token))
        assert resp.status_code == 201
        assert resp.json() == {"message": "Deslogado com sucesso."}
        header = resp.headers["set-cookie"].lower()
        assert header.startswith("token=")
        assert "max-age=0" in header

    def test_logout_without_cookie(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/logout")
        assert resp.status_code == 201
        assert "set-cookie" not in resp.headers

    def test_copied_token_survives_logout(self, client: TestClient) -> None:
        login = client.post(_LOGIN, json={"username": "admin", "password": ADMIN_PASSWORD})
        copied = login.cookies["token"]
        client.post("/api/v1/auth/logout")
        client.cookies.clear()
        # Tokens are stateless: logout cannot invalidate a copy.
        resp = client.get("/api/v1/auth/check", params={"admin": "true"}, cookies=_as(copied))
        assert resp.status_code == 200


class TestCheck:
    def test_no_cookie(self, client: TestClient) -> None:
        resp = client.get("/api/v1/auth/check", params={"admin": "true"})
        assert resp.status_code == 401
        assert resp.json() == {"message": "Necessário token de autorização!"}

    def test_bad_signature(self, client: TestClient, api_context: ApiContext) -> None:
        forged = create_session_token(api_context.admin.uuid, ADMIN_ROLE.uuid, secret_key="x" * 32)
        resp = client.get("/api/v1/auth/check", params={"admin": "true"}, cookies=_as(forged))
        assert resp.status_code == 401
        assert resp.json() == {"message": "Erro na validação do token de autorização!"}

    def test_role_missing_from_store(self, client: TestClient, api_context: ApiContext) -> None:
        orphan = create_session_token(api_context.admin.uuid, _MISSING_UUID)
        resp = client.get("/api/v1/auth/check", params={"admin": "true"}, cookies=_as(orphan))
        assert resp.status_code == 401
        assert resp.json() == {"message": "Autorização não encontrada!"}

    def test_admin_holds_everything(self, client: TestClient, api_context: ApiContext) -> None:
        params = {"admin": "true", "project": "true", "personal": "true", "financial": "true"}
        resp = client.get("/api/v1/auth/check", params=params, cookies=_as(api_context.admin_token))
        assert resp.status_code == 200
        assert resp.json() == {"message": "Usuário autorizado."}

    def test_non_admin_asking_for_admin(self, client: TestClient, api_context: ApiContext) -> None:
        resp = client.get("/api/v1/auth/check", params={"admin": "true"}, cookies=_as(api_context.intern_token))
        assert resp.status_code == 401
        assert resp.json() == {"message": "Usuário sem autorização sobre configurações do sistema"}

    def test_first_missing_capability_only(self, client: TestClient, api_context: ApiContext) -> None:
        params = {"financial": "true", "personal": "true"}
        resp = client.get("/api/v1/auth/check", params=params, cookies=_as(api_context.intern_token))
        assert resp.status_code == 401
        assert resp.json() == {"message": "Usuário sem autorização sobre dados pessoais"}

    def test_false_values_not_checked(self, client: TestClient, api_context: ApiContext) -> None:
        resp = client.get("/api/v1/auth/check", params={"admin": "false"}, cookies=_as(api_context.intern_token))
        assert resp.status_code == 200

    def test_invalid_query_value(self, client: TestClient, api_context: ApiContext) -> None:
        resp = client.get("/api/v1/auth/check", params={"admin": "yes"}, cookies=_as(api_context.admin_token))
        assert resp.status_code == 401
        assert resp.json()["errors"][0]["field"] == "admin"


class TestSelectRoles:
    def test_all(self, client: TestClient, api_context: ApiContext) -> None:
        resp = client.get("/api/v1/auth/select/all", cookies=_as(api_context.intern_token))
        assert resp.status_code == 200
        names = [r["name"] for r in resp.json()]
        assert names[:2] == ["Administrador", "Sócio"]
        assert "Estagiário" in names

    def test_this_is_the_callers_role(self, client: TestClient, api_context: ApiContext) -> None:
        resp = client.get("/api/v1/auth/select/this", cookies=_as(api_context.intern_token))
        assert resp.status_code == 200
        assert resp.json() == [
            {
                "uuid": INTERN_ROLE.uuid,
                "name": "Estagiário",
                "admin": False,
                "project": False,
                "personal": False,
                "financial": False,
            }
        ]

    def test_by_uuid(self, client: TestClient, api_context: ApiContext) -> None:
        resp = client.get(f"/api/v1/auth/select/{ADMIN_ROLE.uuid}", cookies=_as(api_context.intern_token))
        assert [r["name"] for r in resp.json()] == ["Administrador"]

    def test_capability_filters(self, client: TestClient, api_context: ApiContext) -> None:
        params = {"name": "Administrador,Sócio,RH", "auth": "financial", "notAuth": "personal"}
        resp = client.get("/api/v1/auth/select/all", params=params, cookies=_as(api_context.intern_token))
        assert [r["name"] for r in resp.json()] == ["Sócio"]

    def test_invalid_key(self, client: TestClient, api_context: ApiContext) -> None:
        resp = client.get("/api/v1/auth/select/everything", cookies=_as(api_context.intern_token))
        assert resp.status_code == 401
        assert resp.json()["message"] == "Informe uma chave válida!"

    def test_unknown_capability(self, client: TestClient, api_context: ApiContext) -> None:
        resp = client.get("/api/v1/auth/select/all", params={"auth": "root"}, cookies=_as(api_context.intern_token))
        assert resp.status_code == 401

    def test_requires_session(self, client: TestClient) -> None:
        assert client.get("/api/v1/auth/select/all").status_code == 401


class TestRoleMutations:
    _BODY = {"name": "Gerente", "admin": False, "project": True, "personal": False, "financial": True}

    def _create(self, client: TestClient, ctx: ApiContext, name: str) -> str:
        resp = client.post("/api/v1/auth/create", json={**self._BODY, "name": name}, cookies=_as(ctx.admin_token))
        assert resp.status_code == 201, resp.text
        return ctx.store.list_roles(names=[name])[0].uuid

    def test_create_as_admin(self, client: TestClient, api_context: ApiContext) -> None:
        resp = client.post("/api/v1/auth/create", json=self._BODY, cookies=_as(api_context.admin_token))
        assert resp.status_code == 201
        assert resp.json() == {"message": "O cargo/função foi cadastrado."}
        created = api_context.store.list_roles(names=["Gerente"])
        assert len(created) == 1
        assert created[0].project is True
        assert created[0].admin is False

    def test_create_without_admin_leaves_table_unchanged(self, client: TestClient, api_context: ApiContext) -> None:
        before = _role_snapshot(api_context)
        body = {**self._BODY, "name": "Intruso"}
        resp = client.post("/api/v1/auth/create", json=body, cookies=_as(api_context.intern_token))
        assert resp.status_code == 401
        assert resp.json() == {"message": "Usuário sem autorização para criar esses dados!"}
        assert _role_snapshot(api_context) == before

    def test_schema_checked_before_session(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/create", json={"name": "Sem flags"})
        assert resp.status_code == 401
        fields = {e["field"] for e in resp.json()["errors"]}
        assert {"admin", "project", "personal", "financial"} <= fields

    def test_create_requires_session(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/create", json=self._BODY)
        assert resp.status_code == 401
        assert resp.json() == {"message": "Necessário token de autorização!"}

    def test_update(self, client: TestClient, api_context: ApiContext) -> None:
        role_uuid = self._create(client, api_context, "Coordenador")
        body = {**self._BODY, "uuid": role_uuid, "name": "Coordenadora", "personal": True}
        resp = client.put("/api/v1/auth/update", json=body, cookies=_as(api_context.admin_token))
        assert resp.status_code == 201
        assert resp.json() == {"message": "As informações do cargo/função foram atualizadas."}
        role = api_context.store.get_role(role_uuid)
        assert role.name == "Coordenadora"
        assert role.personal is True

    def test_update_default_role_refused_for_admin(self, client: TestClient, api_context: ApiContext) -> None:
        before = _role_snapshot(api_context)
        body = {**self._BODY, "uuid": ADMIN_ROLE.uuid, "name": "Hacked"}
        resp = client.put("/api/v1/auth/update", json=body, cookies=_as(api_context.admin_token))
        assert resp.status_code == 401
        assert resp.json() == {"message": "Usuário sem autorização para editar esses dados!"}
        assert _role_snapshot(api_context) == before

    def test_update_without_admin(self, client: TestClient, api_context: ApiContext) -> None:
        role_uuid = self._create(client, api_context, "Analista")
        body = {**self._BODY, "uuid": role_uuid, "admin": True}
        resp = client.put("/api/v1/auth/update", json=body, cookies=_as(api_context.intern_token))
        assert resp.status_code == 401
        assert api_context.store.get_role(role_uuid).admin is False

    def test_update_missing_role(self, client: TestClient, api_context: ApiContext) -> None:
        body = {**self._BODY, "uuid": _MISSING_UUID}
        resp = client.put("/api/v1/auth/update", json=body, cookies=_as(api_context.admin_token))
        assert resp.status_code == 404
        assert resp.json() == {"message": "Cargo/Função não encontrado!"}

    def test_delete(self, client: TestClient, api_context: ApiContext) -> None:
        role_uuid = self._create(client, api_context, "Temporário")
        resp = client.delete(f"/api/v1/auth/delete/{role_uuid}", cookies=_as(api_context.admin_token))
        assert resp.status_code == 201
        assert resp.json() == {"message": "O cargo/função foi deletado."}
        assert api_context.store.get_role(role_uuid) is None

    def test_delete_default_role_refused_for_admin(self, client: TestClient, api_context: ApiContext) -> None:
        resp = client.delete(f"/api/v1/auth/delete/{ADMIN_ROLE.uuid}", cookies=_as(api_context.admin_token))
        assert resp.status_code == 401
        assert api_context.store.get_role(ADMIN_ROLE.uuid) is not None

    def test_delete_role_with_users_is_conflict(self, client: TestClient, api_context: ApiContext) -> None:
        resp = client.delete(f"/api/v1/auth/delete/{INTERN_ROLE.uuid}", cookies=_as(api_context.admin_token))
        assert resp.status_code == 409
        assert api_context.store.get_role(INTERN_ROLE.uuid) is not None

    def test_delete_without_admin(self, client: TestClient, api_context: ApiContext) -> None:
        role_uuid = self._create(client, api_context, "Protegido")
        resp = client.delete(f"/api/v1/auth/delete/{role_uuid}", cookies=_as(api_context.intern_token))
        assert resp.status_code == 401
        assert api_context.store.get_role(role_uuid) is not None

    def test_delete_malformed_uuid(self, client: TestClient, api_context: ApiContext) -> None:
        resp = client.delete("/api/v1/auth/delete/not-a-uuid", cookies=_as(api_context.admin_token))
        assert resp.status_code == 401
        assert resp.json()["errors"][0]["field"] == "uuid"
