from __future__ import annotations

from django.http import JsonResponse

from communities.models import Community


class CommunityAdminRequiredMixin:
    """
    Restringe a API de uma comunidade ao seu criador e à equipe (is_staff).

    Resolve `community_id` da URL em `self.community` antes de despachar.
    Respostas de recusa são JSON, nunca redirect para login.
    """

    community: Community

    def dispatch(self, request, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({"detail": "Autenticação necessária."}, status=401)

        community = Community.objects.filter(pk=kwargs.get("community_id")).first()
        if community is None:
            return JsonResponse({"detail": "Comunidade não encontrada."}, status=404)
        if not community.is_managed_by(request.user):
            return JsonResponse(
                {"detail": "Você não tem permissão para administrar esta comunidade."},
                status=403,
            )

        self.community = community
        return super().dispatch(request, *args, **kwargs)
