"""
Testes do app accounts - usuário e controle de acesso à API da comunidade.
"""

from django.test import TestCase
from django.urls import reverse

from communities.models import Community

from .models import User


# ---------------------------------------------------------------------------
# Factories / Fixtures
# ---------------------------------------------------------------------------


def create_user(
    email: str = "user@example.com",
    password: str = "SenhaForte123",
    first_name: str = "João",
    last_name: str = "Silva",
    is_staff: bool = False,
    is_superuser: bool = False,
) -> User:
    """Cria usuário para testes."""
    user = User.objects.create_user(
        username=email.lower(),
        email=email.lower(),
        password=password,
        first_name=first_name,
        last_name=last_name,
        is_staff=is_staff,
        is_superuser=is_superuser,
    )
    return user


def create_community(owner: User | None = None, name: str = "Comunidade Esperança", slug: str = "") -> Community:
    return Community.objects.create(
        name=name,
        slug=slug or name.lower().replace(" ", "-"),
        created_by=owner,
    )


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class UserModelTest(TestCase):
    """Testes do modelo User."""

    def test_str_retorna_nome_completo(self):
        user = create_user(first_name="Maria", last_name="Santos")
        self.assertEqual(str(user), "Maria Santos")

    def test_str_fallback_para_username_quando_sem_nome(self):
        user = User.objects.create_user(username="anon@test.com", email="anon@test.com", password="x")
        self.assertEqual(str(user), "anon@test.com")


class CommunityPermissionTest(TestCase):
    """Testes de Community.is_managed_by."""

    def setUp(self):
        self.owner = create_user()
        self.community = create_community(owner=self.owner)

    def test_criador_administra(self):
        self.assertTrue(self.community.is_managed_by(self.owner))

    def test_staff_administra_qualquer_comunidade(self):
        staff = create_user(email="staff@example.com", is_staff=True)
        self.assertTrue(self.community.is_managed_by(staff))

    def test_outro_usuario_nao_administra(self):
        other = create_user(email="outro@example.com")
        self.assertFalse(self.community.is_managed_by(other))


# ---------------------------------------------------------------------------
# Mixins - CommunityAdminRequiredMixin
# ---------------------------------------------------------------------------


class CommunityAdminRequiredMixinTest(TestCase):
    """Acesso à API administrativa da comunidade."""

    def setUp(self):
        self.owner = create_user()
        self.community = create_community(owner=self.owner)
        self.url = reverse("payments:accounts", kwargs={"community_id": self.community.pk})

    def test_anonimo_recebe_401_em_json(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, 401)
        self.assertIn("detail", response.json())

    def test_usuario_sem_permissao_recebe_403(self):
        self.client.force_login(create_user(email="outro@example.com"))
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, 403)

    def test_comunidade_inexistente_retorna_404(self):
        self.client.force_login(self.owner)
        url = reverse("payments:accounts", kwargs={"community_id": self.community.pk + 100})
        response = self.client.get(url)
        self.assertEqual(response.status_code, 404)

    def test_criador_acessa(self):
        self.client.force_login(self.owner)
        response = self.client.get(self.url)
        # Sem subconta ainda: o acesso passa e a view responde 404 de negócio.
        self.assertEqual(response.status_code, 404)
        self.assertIn("subconta", response.json()["detail"])
