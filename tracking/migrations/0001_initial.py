import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('orders', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='CourierLocation',
            fields=[
                ('courier', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, primary_key=True, related_name='tracked_location', serialize=False, to=settings.AUTH_USER_MODEL, verbose_name='Repartidor')),
                ('latitude', models.FloatField()),
                ('longitude', models.FloatField()),
                ('accuracy', models.FloatField(blank=True, help_text='Precisión en metros', null=True)),
                ('updated_at', models.DateTimeField(verbose_name='Actualizado en')),
                ('is_moving', models.BooleanField(default=False, verbose_name='En movimiento')),
                ('current_order', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='orders.order', verbose_name='Pedido en curso')),
            ],
            options={
                'verbose_name': 'Ubicación de repartidor',
                'verbose_name_plural': 'Ubicaciones de repartidores',
                'ordering': ['-updated_at'],
            },
        ),
    ]
