# deployplan_blueprint.py
# Blueprint for the demo app: beta, then prod in two regions
from __future__ import annotations

from deployplan.dsl import blueprint, docker_asset, file_asset, matrix, sh, source, stack, stage, synth, wave


def define_blueprint():
    src = source("acme/shop", branch="main")
    build = synth("npm ci", "npm run build", "npx cdk synth", input=src)

    # Same lambda bundle and image for every environment
    handler_zip = "3f1c9a-handler"
    api_image = "9be012-api"

    def env_stage(name: str):
        db = stack(f"{name}-Db")
        api = stack(
            f"{name}-Api",
            file_asset(handler_zip, f"{handler_zip}:{name}"),
            docker_asset(api_image, f"{api_image}:{name}"),
            depends_on=[db],
        )
        return stage(name, db, api)

    beta = env_stage("Beta")
    beta.add_post(sh("IntegTest", "npm run integ", inputs=[src.primary_output]))

    prod = wave(
        "Prod",
        *matrix("region", ["eu-west-1", "us-east-1"]).stages(lambda r: env_stage(f"Prod-{r}")),
        pre=[sh("ManualApproval", "echo approve")],
    )

    return blueprint(
        build,
        wave("Beta", beta),
        prod,
    )
